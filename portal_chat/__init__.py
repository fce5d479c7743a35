"""
Streaming chat assistant client for the study portal.
"""
