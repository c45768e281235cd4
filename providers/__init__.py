"""
Provider session drivers for the consultation video layer
"""
