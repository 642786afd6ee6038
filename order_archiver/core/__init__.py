"""
Core building blocks: models, errors, configuration and the run gate.
"""
