"""
ActionExecutor

Applies one action from the fixed catalog to the run's record. Each action
performs exactly one store mutation and, except notifications, writes one
record activity-log entry whose value uses the *current* display name of any
referenced status, tag, motivation or user.

Catalog:
    update_status, update_temperature, add_tag, remove_tag, add_motivation,
    remove_motivation, assign_user, mark_complete, add_to_board, create_task,
    send_notification, wait (not implemented, reported as skipped)
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from .context import ExecutionContext
from .exceptions import ActionError
from .nodes import (
    ActionConfig,
    ActionNode,
    AddToBoardConfig,
    AssignUserConfig,
    CreateTaskConfig,
    MotivationConfig,
    SendNotificationConfig,
    TagConfig,
    UpdateStatusConfig,
    UpdateTemperatureConfig,
    WaitConfig,
)
from .stores import Stores

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
ROUND_ROBIN = "round_robin"


@dataclass
class ActionResult:
    """Outcome of one action. ``skipped`` means nothing was changed."""

    message: Optional[str]
    skipped: bool = False


Handler = Callable[[ActionConfig, ExecutionContext], Awaitable[ActionResult]]


class ActionExecutor:
    """
    Dispatches action nodes to their handlers.

    Example:
        executor = ActionExecutor(stores)
        result = await executor.apply(node, context)
        print(result.message)   # 'Tag "VIP" added'
    """

    def __init__(self, stores: Stores):
        self.stores = stores
        self._handlers: Dict[str, Handler] = {
            "update_status": self._update_status,
            "update_temperature": self._update_temperature,
            "add_tag": self._add_tag,
            "remove_tag": self._remove_tag,
            "add_motivation": self._add_motivation,
            "remove_motivation": self._remove_motivation,
            "assign_user": self._assign_user,
            "mark_complete": self._mark_complete,
            "add_to_board": self._add_to_board,
            "create_task": self._create_task,
            "send_notification": self._send_notification,
            "wait": self._wait,
        }

    async def apply(self, node: ActionNode, context: ExecutionContext) -> ActionResult:
        """
        Apply the action of ``node`` to the record of ``context``.

        Returns:
            ActionResult with a human-readable message. Unknown action types
            and actions missing required params are skipped.

        Raises:
            ActionError: If the config is invalid or the store mutation fails
        """
        action_type = node.action_type
        handler = self._handlers.get(action_type)
        if handler is None:
            logger.info(f"Unknown action type: {action_type}")
            return ActionResult(message=None, skipped=True)

        try:
            config = node.typed_config()
        except ValueError as e:
            raise ActionError(str(e), action_type=action_type, node_id=node.id) from e

        missing = config.missing_fields()
        if missing:
            logger.info(f"Skipping {action_type} on node {node.id}: missing {', '.join(missing)}")
            return ActionResult(
                message=f"Skipped {action_type}: missing {', '.join(missing)}",
                skipped=True,
            )

        try:
            return await handler(config, context)
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(
                f"Action {action_type} failed: {e}", action_type=action_type, node_id=node.id
            ) from e

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    async def _log_activity(
        self,
        context: ExecutionContext,
        action_type: str,
        description: str,
        new_value: Optional[str] = None,
    ) -> None:
        # A failed activity entry never fails the action it describes
        try:
            await self.stores.activity.log_activity(
                tenant_id=context.tenant_id,
                record_id=context.record_id,
                action=f"automation_{action_type}",
                field=action_type,
                new_value=new_value or description,
                source=context.activity_source,
            )
        except Exception as e:
            logger.error(f"Failed to log automation activity for record {context.record_id}: {e}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _update_status(self, config: UpdateStatusConfig, context: ExecutionContext) -> ActionResult:
        name = await self.stores.catalog.status_name(context.tenant_id, config.status_id) or UNKNOWN
        await self.stores.records.update_record(
            context.tenant_id, context.record_id, {"status_id": config.status_id}
        )
        message = f'Status changed to "{name}"'
        await self._log_activity(context, "update_status", message, name)
        return ActionResult(message)

    async def _update_temperature(
        self, config: UpdateTemperatureConfig, context: ExecutionContext
    ) -> ActionResult:
        await self.stores.records.update_record(
            context.tenant_id, context.record_id, {"temperature": config.temperature}
        )
        message = f'Temperature changed to "{config.temperature}"'
        await self._log_activity(context, "update_temperature", message, config.temperature)
        return ActionResult(message)

    async def _add_tag(self, config: TagConfig, context: ExecutionContext) -> ActionResult:
        name = await self.stores.catalog.tag_name(context.tenant_id, config.tag_id) or UNKNOWN
        await self.stores.records.add_tag(context.tenant_id, context.record_id, config.tag_id)
        message = f'Tag "{name}" added'
        await self._log_activity(context, "add_tag", message, name)
        return ActionResult(message)

    async def _remove_tag(self, config: TagConfig, context: ExecutionContext) -> ActionResult:
        name = await self.stores.catalog.tag_name(context.tenant_id, config.tag_id) or UNKNOWN
        await self.stores.records.remove_tag(context.tenant_id, context.record_id, config.tag_id)
        message = f'Tag "{name}" removed'
        await self._log_activity(context, "remove_tag", message, name)
        return ActionResult(message)

    async def _add_motivation(self, config: MotivationConfig, context: ExecutionContext) -> ActionResult:
        name = await self.stores.catalog.motivation_name(context.tenant_id, config.motivation_id) or UNKNOWN
        await self.stores.records.add_motivation(context.tenant_id, context.record_id, config.motivation_id)
        message = f'Motivation "{name}" added'
        await self._log_activity(context, "add_motivation", message, name)
        return ActionResult(message)

    async def _remove_motivation(
        self, config: MotivationConfig, context: ExecutionContext
    ) -> ActionResult:
        name = await self.stores.catalog.motivation_name(context.tenant_id, config.motivation_id) or UNKNOWN
        await self.stores.records.remove_motivation(
            context.tenant_id, context.record_id, config.motivation_id
        )
        message = f'Motivation "{name}" removed'
        await self._log_activity(context, "remove_motivation", message, name)
        return ActionResult(message)

    async def _assign_user(self, config: AssignUserConfig, context: ExecutionContext) -> ActionResult:
        name = await self.stores.catalog.user_display_name(context.tenant_id, config.user_id) or UNKNOWN
        await self.stores.records.update_record(
            context.tenant_id, context.record_id, {"assigned_to_id": config.user_id}
        )
        message = f'Assigned to "{name}"'
        await self._log_activity(context, "assign_user", message, name)
        return ActionResult(message)

    async def _mark_complete(self, config: ActionConfig, context: ExecutionContext) -> ActionResult:
        await self.stores.records.update_record(
            context.tenant_id, context.record_id, {"is_complete": True}
        )
        message = "Marked as complete"
        await self._log_activity(context, "mark_complete", message)
        return ActionResult(message)

    async def _add_to_board(self, config: AddToBoardConfig, context: ExecutionContext) -> ActionResult:
        order = await self.stores.boards.add_to_board(
            context.tenant_id, context.record_id, config.board_id, config.column_id
        )
        message = f"Added to board at position {order}"
        await self._log_activity(context, "add_to_board", message, config.column_id)
        return ActionResult(message)

    async def _create_task(self, config: CreateTaskConfig, context: ExecutionContext) -> ActionResult:
        record = await self.stores.records.get_record(context.tenant_id, context.record_id)
        if record is None or not record.owner_id:
            logger.warning(f"create_task skipped: no account found for record {context.record_id}")
            return ActionResult(message="Skipped create_task: record account not found", skipped=True)

        # Round-robin assignment is resolved outside the engine
        assignee = None if config.assigned_to_id == ROUND_ROBIN else config.assigned_to_id

        await self.stores.tasks.create_task(
            tenant_id=record.owner_id,
            record_id=context.record_id,
            title=config.title,
            description=config.description or None,
            assigned_to_id=assignee or None,
            due_date=config.due_date,
            priority=config.priority or "MEDIUM",
        )
        message = f'Task "{config.title}" created'
        await self._log_activity(context, "create_task", message, config.title)
        return ActionResult(message)

    async def _send_notification(
        self, config: SendNotificationConfig, context: ExecutionContext
    ) -> ActionResult:
        await self.stores.notifications.create_notification(
            tenant_id=context.tenant_id,
            user_id=config.user_id,
            title=config.title,
            message=config.message,
            record_id=context.record_id,
        )
        return ActionResult(f'Notification "{config.title}" sent')

    async def _wait(self, config: WaitConfig, context: ExecutionContext) -> ActionResult:
        # TODO: persist a resume token and continue the run from a scheduler instead of skipping
        logger.warning(
            f"Wait action ({config.duration} {config.unit}) is not supported, continuing without delay"
        )
        return ActionResult(
            message=f"Wait {config.duration} {config.unit} not supported, continued without delay",
            skipped=True,
        )
