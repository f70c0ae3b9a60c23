"""
定时任务调度器服务
使用 APScheduler 每天生成到期的周期性费用
"""

import logging
from datetime import date
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from retailhub.core.config import settings
from retailhub.db.session import SessionLocal
from retailhub.api.api_v1.endpoints.recurring_expenses import generate_due_expenses

logger = logging.getLogger(__name__)

# 未启用时为 None
scheduler: Optional[AsyncIOScheduler] = None


async def generate_recurring_expenses(today: Optional[date] = None) -> dict:
    """执行周期性费用生成（所有组织），供定时任务和手动触发调用"""
    async with SessionLocal() as db:
        result = await generate_due_expenses(db, today or date.today())
        await db.commit()
    logger.info(f"✅ 周期性费用生成完成: 新增 {result.generated} 笔，停用 {result.deactivated} 项")
    return result.model_dump()


async def _scheduled_job():
    try:
        await generate_recurring_expenses()
    except Exception as e:
        logger.error(f"❌ 周期性费用生成失败: {str(e)}")


def init_scheduler():
    """按配置启动调度器；禁用时什么也不做"""
    global scheduler

    if not settings.RECURRING_EXPENSES_ENABLED:
        logger.info("🔁 周期性费用定时生成已禁用")
        return

    hour, minute = settings.RECURRING_EXPENSES_HOUR, settings.RECURRING_EXPENSES_MINUTE
    scheduler = AsyncIOScheduler()
    # 错过的执行合并为一次，生成逻辑本身会补齐所有漏掉的周期
    scheduler.add_job(
        _scheduled_job,
        trigger=CronTrigger(hour=hour, minute=minute),
        id="recurring_expenses",
        name="周期性费用生成",
        coalesce=True,
        misfire_grace_time=3600,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"⏰ 调度器已启动，每天 {hour:02d}:{minute:02d} 生成周期性费用")


def shutdown_scheduler():
    global scheduler
    if scheduler is None:
        return
    scheduler.shutdown(wait=False)
    scheduler = None
    logger.info("⏰ 调度器已关闭")


def get_scheduler_status() -> dict:
    """调度器状态（系统管理接口展示用）"""
    jobs = []
    if scheduler is not None:
        jobs = [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ]
    return {
        "enabled": settings.RECURRING_EXPENSES_ENABLED,
        "running": bool(scheduler and scheduler.running),
        "jobs": jobs,
    }
