"""
Care transition lifecycle and TCM compliance engine.
"""
