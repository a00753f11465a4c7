import logging
from datetime import date
from celery import shared_task
from django.utils import timezone

from .exceptions import StorageError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,   # 初始重试延迟（秒），指数退避会乘以 2^retry_count
    acks_late=True,           # 任务执行完才 ack，防止 worker 崩溃时任务丢失
    reject_on_worker_lost=True,
)
def audit_missed_doses(self, care_plan_id: str, on_date: str | None = None, tz_name: str | None = None):
    """
    某个 care plan 某一天的给药汇总，对每个 match window 已关闭但仍未给药的 dose 打 warning。

    只读，不写任何给药记录（missed 记录由照护者手动标记）。

    重试策略：
      - StorageError 最多重试 3 次
      - 指数退避：10s → 20s → 40s
    """
    from .intake import parse_timezone
    from .services import AdministrationService

    tz = parse_timezone(tz_name)
    now = timezone.now()
    target = date.fromisoformat(on_date) if on_date else now.astimezone(tz).date() if tz else now.date()

    logger.info("[Celery][audit_missed_doses] care_plan=%s date=%s (attempt %d/%d)",
                care_plan_id, target, self.request.retries + 1, self.max_retries + 1)

    service = AdministrationService()
    try:
        doses = service.scheduled_doses(care_plan_id, target, tz=tz)
    except StorageError as exc:
        if self.request.retries < self.max_retries:
            countdown = self.default_retry_delay * (2 ** self.request.retries)
            logger.warning("[Celery] care_plan=%s 读取失败，%ds 后重试: %s", care_plan_id, countdown, exc.message)
            raise self.retry(exc=exc, countdown=countdown)
        logger.error("[Celery] care_plan=%s 已达最大重试次数，放弃", care_plan_id)
        raise

    medications = {m.id: m for m in service.store.list_medications(care_plan_id)}
    summary = {
        'care_plan_id': care_plan_id,
        'date': target.isoformat(),
        'expected': len(doses),
        'administered': 0,
        'pending': 0,
        'missed': [],
    }

    for dose in doses:
        if dose.administered:
            summary['administered'] += 1
            continue

        med = medications.get(dose.medication_id)
        window = service.match_windows.for_schedule(med.schedule) if med else service.match_windows.explicit
        if dose.scheduled_at + window < now:
            summary['missed'].append({
                'medication_id': dose.medication_id,
                'medication_name': med.name if med else '',
                'slot': dose.slot_label,
                'scheduled_at': dose.scheduled_at.isoformat(),
            })
            logger.warning("[Celery] care_plan=%s missed dose: %s %s at %s",
                           care_plan_id, med.name if med else dose.medication_id,
                           dose.slot_label, dose.scheduled_at.isoformat())
        else:
            summary['pending'] += 1

    logger.info("[Celery] care_plan=%s %s: expected=%d administered=%d pending=%d missed=%d",
                care_plan_id, target, summary['expected'], summary['administered'],
                summary['pending'], len(summary['missed']))
    return summary
