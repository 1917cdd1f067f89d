# sitewatch/utils/__init__.py
