"""
Finance Core: планирование обязательств, амортизация и учёт балансов.
"""

__version__ = "1.0.0"
