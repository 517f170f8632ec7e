"""
Advisory edit locks shared between collaborating clients.
"""
