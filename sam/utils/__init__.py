"""
SAM Utilities Package.

Small helpers shared across services:
- datetime_utils: timezone normalization and Apple reference-date conversion
- db_paths: location of the evidence database
"""
