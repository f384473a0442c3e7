"""
Cognito authentication session manager
"""

__version__ = "1.0.0"
