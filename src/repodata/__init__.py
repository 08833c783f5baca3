"""Conda repodata mirroring and filtering.

Downloads upstream ``repodata.json`` catalogs, narrows them to an allowlist
(optionally widened by dependency closure) and publishes the filtered
catalogs and index files atomically.
"""
