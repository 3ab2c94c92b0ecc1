"""
api — HTTP surface.

Modules:
    schemas       — request / response models
    dependencies  — access to the RelayServices container
    v1/           — route modules
"""
