"""
Agent 通信モジュール

セッション管理、レポート送信キュー、サイドチャネルを提供する。
"""
