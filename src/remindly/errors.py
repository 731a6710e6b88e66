__all__ = ["RemindlyError", "NotFoundError", "AlreadyExistsError", "PersistenceError"]


class RemindlyError(Exception):
    pass


class NotFoundError(RemindlyError):
    """操作引用了存储中不存在的提醒 ID"""

    def __init__(self, reminder_id: int) -> None:
        super().__init__(f"Reminder with id {reminder_id} does not exist.")
        self.reminder_id = reminder_id


class AlreadyExistsError(RemindlyError):
    """提醒 ID 冲突, 属于程序错误而非用户可恢复的错误"""

    def __init__(self, reminder_id: int) -> None:
        super().__init__(f"Cannot add reminder: reminder with id {reminder_id} already exists.")
        self.reminder_id = reminder_id


class PersistenceError(RemindlyError):
    """底层存储读写失败, 进行中的修改已整体回滚"""
