"""
Cross-department services: visibility, workflow, aggregation, catalog
"""
