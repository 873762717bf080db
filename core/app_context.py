import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from core.config_loader import AppConfig, QueueConfig
from core.crm_client import CrmContactClient
from core.queue import JobQueue, InMemoryJobQueue, RqJobQueue
from database.database import build_engine, build_session_factory
from notification.channels import NotificationChannel, NotificationChannelFactory
from notification.dispatcher import NotificationDispatcher
from notification.log_recorder import NotificationLogRecorder
from notification.normalizer import WebhookNormalizer, ContactDirectory
from notification.service import NotificationService
from notification.subscriptions import PushSubscriptionManager
from notification.worker import NotificationWorker

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    This eliminates duplicate wiring code between the web app and the
    worker, and provides a single source of truth for service
    instantiation. DB access should be obtained via notification_uow()
    inside each unit of work.
    """
    config: AppConfig
    engine: Engine
    session_factory: sessionmaker
    queue: JobQueue
    channels: Dict[str, NotificationChannel]
    subscription_manager: PushSubscriptionManager
    dispatcher: NotificationDispatcher
    normalizer: WebhookNormalizer
    notification_service: NotificationService
    worker: NotificationWorker

    @classmethod
    def build(
        cls,
        config: AppConfig,
        queue: Optional[JobQueue] = None,
        contact_directory: Optional[ContactDirectory] = None,
        engine: Optional[Engine] = None
    ) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            queue: Queue client to use instead of the configured one
            contact_directory: Contact lookup to use instead of the CRM API client
            engine: Engine to use instead of one built from config.database

        Returns:
            Fully wired AppContext instance
        """
        engine = engine or build_engine(config.database.url, config.database.echo)
        session_factory = build_session_factory(engine)

        queue = queue or cls._build_queue(config.queue)

        subscription_manager = PushSubscriptionManager(session_factory)
        channels = cls._build_channels(config, subscription_manager)

        dispatcher = NotificationDispatcher(
            session_factory,
            channels,
            subscription_manager,
            log_recorder=NotificationLogRecorder(session_factory),
            channel_timeout=config.worker.channel_timeout_seconds,
            max_in_flight_per_channel=config.worker.max_in_flight_per_channel,
            url_template=config.crm.conversation_url_template
        )

        normalizer = WebhookNormalizer(contact_directory or CrmContactClient(config.crm))
        notification_service = NotificationService(queue, normalizer, session_factory)

        worker = NotificationWorker(
            queue,
            dispatcher,
            reconnect_delay_seconds=config.worker.reconnect_delay_seconds,
            maintenance_interval_seconds=config.worker.maintenance_interval_seconds,
            log_retention_days=config.worker.log_retention_days
        )

        return cls(
            config=config,
            engine=engine,
            session_factory=session_factory,
            queue=queue,
            channels=channels,
            subscription_manager=subscription_manager,
            dispatcher=dispatcher,
            normalizer=normalizer,
            notification_service=notification_service,
            worker=worker
        )

    @staticmethod
    def _build_queue(queue_config: QueueConfig) -> JobQueue:
        """Build the job queue client for the configured backend."""
        if queue_config.backend == 'memory':
            logger.warning("Using in-memory job queue - jobs are not durable across restarts")
            return InMemoryJobQueue(queue_config.queue_name, max_retries=queue_config.max_retries)

        return RqJobQueue(
            redis_url=queue_config.redis_url,
            name=queue_config.queue_name,
            max_retries=queue_config.max_retries,
            job_timeout_seconds=queue_config.job_timeout_seconds
        )

    @staticmethod
    def _build_channels(
        config: AppConfig,
        subscription_manager: PushSubscriptionManager
    ) -> Dict[str, NotificationChannel]:
        """Build one sender per registered channel type."""
        channels = {
            'push': NotificationChannelFactory.get_channel(
                'push',
                config.channels,
                subscription_manager=subscription_manager,
                timeout=config.worker.channel_timeout_seconds
            ),
            'email': NotificationChannelFactory.get_channel(
                'email', config.channels, timeout=config.worker.channel_timeout_seconds
            ),
            'slack': NotificationChannelFactory.get_channel(
                'slack', config.channels, timeout=config.worker.channel_timeout_seconds
            ),
        }

        for name, channel in channels.items():
            if not channel.validate_config():
                logger.warning(f"{name} channel is not configured; sends will fail until it is")
        return channels

    def close(self) -> None:
        self.dispatcher.close()
        self.queue.close()
        self.engine.dispose()
