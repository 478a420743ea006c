"""
Core module - graph model, condition evaluation, actions and the execution engine
"""
