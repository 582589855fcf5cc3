"""
Services Module

Backend services behind the module manager API.

Key Submodules:
- kubernetes: apply/delete module workloads, read pod phase, NodePorts and logs
- github_client: validate module repositories and fetch their config/ files
- module_registry: installed module records (SQLite) + legacy JSON migration
- known_modules: cached catalog of pre-approved modules
- module_service: install / configure / uninstall / status

Usage:
    from smarthome_api.services.module_service import get_module_service
"""
