"""Core Business Logic Module

Plugin logic for the SCIM endpoint, independent of the HTTP layer.

Module Structure:
    - dotpath.py      : Dotted-path lookup and assignment (``emails[0].value``)
    - cloning.py      : Deep copy keeping opaque values intact
    - projection.py   : ``attributes`` / ``excludedAttributes`` filtering
    - merge.py        : Deep merge with multi-value (value/type) semantics
    - patch.py        : Partial-update normalization and application
    - provisioning_service.py : User/group operations and membership sync
    - lock.py         : FIFO lock
    - secrets.py      : Encrypted configuration values and external references
    - utils.py        : json_stringify()
    - exceptions.py   : ProvisioningError hierarchy

Usage Pattern:
    Import explicitly when needed:
        from scimgw.core.provisioning_service import ProvisioningService
        from scimgw.core.merge import merge
        from scimgw.core.projection import project
"""
