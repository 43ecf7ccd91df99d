"""SCIM gateway endpoint plugin on a document store.

To use the Flask app:
    from scimgw.flask_app import create_app

To use the plugin operations without HTTP:
    from scimgw.core.provisioning_service import ProvisioningService
"""
# Note: flask_app is not imported here so the core can be used without Flask
