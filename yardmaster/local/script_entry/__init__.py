"""
Minimal entry scripts for processes Yardmaster launches itself.
"""
