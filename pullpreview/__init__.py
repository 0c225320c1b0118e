"""
pullpreview - per-pull-request preview environments on Azure.

This package provisions a short-lived environment for each pull request from
a list of container services, keeps every resource inside one resource group,
and deletes that group on teardown or when provisioning fails.
"""

__version__ = "0.1.0"
