"""
Tools module for dwh-store - operator command line utilities.
"""
