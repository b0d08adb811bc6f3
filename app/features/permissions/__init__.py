"""
Permission management feature module.

Global role/permission catalog (catalog.py) and effective-access resolution
for profiles and users (resolution.py).
"""
