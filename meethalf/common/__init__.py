# meethalf/common/__init__.py
"""
Общие утилиты: константы, логирование, локализация, исключения, геометрия.
"""

__all__: list[str] = []
