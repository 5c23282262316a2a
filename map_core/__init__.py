"""
Core of the map-intelligente canvas.

- auth:   signed session tokens, login tiers, account store
- policy: path-based authorization with cached allow-lists
- canvas: shape graph, row layout and group collapse/expand
"""
