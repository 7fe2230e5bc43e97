"""
JSON API blueprints
"""
