"""
Domain modules of the Arcadia rewards core.

Each subpackage owns one domain and exposes its services from its
`__init__`. Subpackages are imported explicitly by their users.
"""
