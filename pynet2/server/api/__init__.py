"""
pyNet2 REST API

All routes live under /api/v1 (prefixes configured in main.py):

    - /api/v1/update                         -> update all sites now or in the background
    - /api/v1/sites                          -> sites, access levels, departments, unknown tokens
    - /api/v1/sites/{site_id}/doors          -> doors, door commands and sequences
    - /api/v1/sites/{site_id}/users          -> users, department views and user commands

Errors are returned as {"error": ...}: unknown site, door or user gives 404 and
a failed command gives 500.
"""
