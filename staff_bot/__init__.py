"""LINEスタッフ登録・シフト希望収集Bot"""

__version__ = "1.0.0"
