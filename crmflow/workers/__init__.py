"""
Workers module - Celery application and tasks
"""
