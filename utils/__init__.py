"""
Utils package for RENDIX
"""
