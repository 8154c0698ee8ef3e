"""
Sponsor backend project package
"""
