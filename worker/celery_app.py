from celery import Celery
from kombu import Queue

from core.env import env_int, env_str
from services.schedule_loader import as_celery_schedule, load_schedule_config

CELERY_TIMEZONE = env_str("CELERY_TIMEZONE", "America/Sao_Paulo") or "UTC"
CELERY_DEFAULT_QUEUE = env_str("CELERY_DEFAULT_QUEUE", "alerts") or "alerts"
CELERY_BROKER_URL = env_str("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = env_str("CELERY_RESULT_BACKEND", "redis://redis:6379/1")
# Driver guards live in process memory; a thread pool keeps one driver instance per worker.
CELERY_WORKER_POOL = env_str("CELERY_WORKER_POOL", "threads") or "threads"
CELERY_WORKER_CONCURRENCY = env_int("CELERY_WORKER_CONCURRENCY", 3, minimum=1)

app = Celery(
    "gestao_alerts",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=["worker.tasks"],
)

app.conf.update(
    task_track_started=True,
    timezone=CELERY_TIMEZONE,
    task_default_queue=CELERY_DEFAULT_QUEUE,
    task_queues=(Queue(CELERY_DEFAULT_QUEUE),),
    task_routes={},
    worker_pool=CELERY_WORKER_POOL,
    worker_concurrency=CELERY_WORKER_CONCURRENCY,
    beat_schedule={},
)

yaml_timezone, yaml_entries, _ = load_schedule_config()
schedule_from_yaml = as_celery_schedule(yaml_entries) if yaml_entries else {}
if schedule_from_yaml:
    app.conf.beat_schedule.update(schedule_from_yaml)
if yaml_timezone:
    app.conf.update(timezone=yaml_timezone)
current_tz = getattr(app.conf, "timezone", None) or "UTC"
app.conf.enable_utc = str(current_tz).upper() == "UTC"
