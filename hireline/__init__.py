"""
Hireline 招聘流程后端

Tally 表单 Webhook 接入 + 招聘阶段状态机
"""

__version__ = "1.0.0"
