"""
SharePoint Version Retention & Preservation Hold Tool

Configures version auto-trim and batch version cleanup on a SharePoint Online
tenant, and reviews / downloads each site's Preservation Hold Library with an
optional copy to Azure Blob Storage.
"""

VERSION = "1.4.0"
