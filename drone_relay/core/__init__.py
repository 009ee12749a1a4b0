"""
Core
====

Configuration, logging and error types shared by every layer.
"""
