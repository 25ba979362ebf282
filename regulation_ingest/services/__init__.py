"""
Pipeline services: parsing, hierarchical import, retry and the import job.
"""
