"""
核心基础设施模块
"""
