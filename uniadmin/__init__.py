"""
University administration platform: cross-department identity, enrollment workflow and reporting
"""
