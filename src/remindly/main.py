from remindly.logger import setup_logging, logger
from remindly.config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level=CONSOLE_LOG_LEVEL,
)

import asyncio
import signal

from remindly.admin.http_server import main_loop as admin_http_main
from remindly.core.manager import build_manager
from remindly.events import E, bus
from remindly.storage.db_config import open_db
from remindly.world.alarm import PollingAlarmBackend
from remindly.world.notification import BusNotificationPresenter

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


@bus.on(E.REMINDERS_CHANGED)
def _log_reminders_changed() -> None:
    logger.debug("提醒列表已更新, 观察者需要刷新")


async def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    conn = await open_db(REMINDLY_DB_PATH)
    alarms = PollingAlarmBackend(poll_seconds=ALARM_POLL_SECONDS)
    presenter = BusNotificationPresenter(bus, user_timezone=USER_TIMEZONE)
    manager = build_manager(conn, alarms, presenter, bus)

    try:
        # 补投进程未运行期间到期的提醒, 并重新注册其余提醒
        await manager.schedule_all_reminders()

        tasks = [alarms.main_loop(shutdown_event, manager.on_due_payload)]
        if ENABLE_ADMIN_HTTP:
            tasks.append(admin_http_main(shutdown_event, manager, ADMIN_HTTP_HOST, ADMIN_HTTP_PORT, ADMIN_AUTH_TOKEN))
        else:
            logger.warning("Admin HTTP 服务已禁用")

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭数据库连接...")
        await conn.close()
        logger.info("Remindly 已关闭")


def run() -> None:
    logger.info("启动 Remindly...")
    asyncio.run(main())


if __name__ == "__main__":
    run()
