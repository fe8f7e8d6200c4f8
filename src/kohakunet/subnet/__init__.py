"""
Subnet allocation core: network config validation, subnet keys, the lease
data model and the lease manager protocol.

Import from the submodules, or from the top-level kohakunet package:
    from kohakunet import LocalManager, validate_config
"""
