"""
员工用户 CRUD 操作

员工由身份提供方同步，这里只按 ID 读取
"""
from hireline.models import User
from .base import CRUDBase


class CRUDUser(CRUDBase[User]):
    """员工用户 CRUD 操作类"""


user_crud = CRUDUser(User)
