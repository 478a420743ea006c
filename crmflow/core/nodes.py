"""
Node System for the crmflow automation engine

This module defines the node types that compose an automation workflow:
- TriggerNode: Entry point, tagged with the event type it listens to
- ActionNode: Applies one catalog action to the record
- ConditionNode: Branch group that selects exactly one successor branch
- BranchNode: One guarded branch under a ConditionNode
- UnknownNode: Any node kind the engine does not know (skipped at run time)

Nodes are parsed from the editor's JSON format:

    {
        "id": "n1",
        "type": "action",
        "data": {"label": "Set hot", "type": "update_temperature",
                 "config": {"temperature": "hot"}},
        "position": {"x": 0, "y": 0}
    }

All nodes are immutable (frozen) Pydantic models. Action parameters are
parsed into one typed config model per action type.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, Field, ValidationError, field_validator


# =============================================================================
# Conditions
# =============================================================================


class Condition(BaseModel):
    """
    A single predicate of a branch.

    ``logic`` says how this condition combines with the accumulated result of
    the conditions before it ("OR", anything else means AND). It is ignored on
    the first condition.
    """

    field: Optional[str] = ""
    operator: Optional[str] = "equals"
    value: Any = None
    logic: Optional[str] = None

    class Config:
        frozen = True
        extra = "ignore"

    @field_validator("field", "operator", mode="before")
    @classmethod
    def null_to_default(cls, v, info):
        # The editor sends null for a field or operator left unset
        if v is None:
            return cls.model_fields[info.field_name].default
        return v


def _parse_conditions(raw: Any) -> Tuple[Condition, ...]:
    if not raw:
        return ()
    return tuple(c if isinstance(c, Condition) else Condition(**c) for c in raw)


# =============================================================================
# Action configs
# =============================================================================


class ActionConfig(BaseModel):
    """
    Base class for typed action parameters.

    ``required`` lists the attributes an action needs to do anything. A config
    missing one of them is rejected at save time and skipped at run time.
    """

    required: ClassVar[Tuple[str, ...]] = ()

    class Config:
        frozen = True
        extra = "allow"
        populate_by_name = True

    def missing_fields(self) -> List[str]:
        return [name for name in self.required if not getattr(self, name)]


class UpdateStatusConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("status_id",)
    status_id: Optional[str] = Field(None, alias="statusId")


class UpdateTemperatureConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("temperature",)
    temperature: Optional[str] = None


class TagConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("tag_id",)
    tag_id: Optional[str] = Field(None, alias="tagId")


class MotivationConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("motivation_id",)
    motivation_id: Optional[str] = Field(None, alias="motivationId")


class AssignUserConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("user_id",)
    user_id: Optional[str] = Field(None, alias="userId")


class MarkCompleteConfig(ActionConfig):
    pass


class AddToBoardConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("board_id", "column_id")
    board_id: Optional[str] = Field(None, alias="boardId")
    column_id: Optional[str] = Field(None, alias="columnId")


class CreateTaskConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("title",)
    title: Optional[str] = None
    description: Optional[str] = None
    assigned_to_id: Optional[str] = Field(None, alias="assignedToId")
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    priority: Optional[str] = "MEDIUM"

    @field_validator("due_date", mode="before")
    @classmethod
    def empty_due_date(cls, v):
        # The editor sends "" for a cleared date picker
        return v or None

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v):
        return v or "MEDIUM"


class SendNotificationConfig(ActionConfig):
    required: ClassVar[Tuple[str, ...]] = ("user_id", "title", "message")
    user_id: Optional[str] = Field(None, alias="userId")
    title: Optional[str] = None
    message: Optional[str] = None


class WaitConfig(ActionConfig):
    duration: Optional[int] = None
    unit: Optional[str] = "minutes"

    @field_validator("unit", mode="before")
    @classmethod
    def default_unit(cls, v):
        return v or "minutes"


ACTION_CONFIGS: Dict[str, Type[ActionConfig]] = {
    "update_status": UpdateStatusConfig,
    "update_temperature": UpdateTemperatureConfig,
    "add_tag": TagConfig,
    "remove_tag": TagConfig,
    "add_motivation": MotivationConfig,
    "remove_motivation": MotivationConfig,
    "assign_user": AssignUserConfig,
    "mark_complete": MarkCompleteConfig,
    "add_to_board": AddToBoardConfig,
    "create_task": CreateTaskConfig,
    "send_notification": SendNotificationConfig,
    "wait": WaitConfig,
}


# =============================================================================
# Nodes
# =============================================================================


class BaseNode(BaseModel, ABC):
    """
    Base class for all workflow nodes.

    All nodes have:
    - id: Unique identifier
    - kind: trigger, action, condition, branch (or an unknown string)
    - label: Optional human-readable label
    """

    id: str = Field(..., min_length=1, description="Unique node identifier")
    kind: str
    label: Optional[str] = Field(None, description="Human-readable label")

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("id")
    @classmethod
    def validate_id_not_empty(cls, v: str) -> str:
        """Ensure ID is not empty or whitespace"""
        if not v.strip():
            raise ValueError("Node ID cannot be empty")
        return v

    @property
    def display_name(self) -> str:
        return self.label or self.id

    @abstractmethod
    def validate_node(self) -> None:
        """
        Save-time validation specific to each node kind.
        Raises ValueError when the node could not run as authored.
        """
        pass


class TriggerNode(BaseNode):
    """
    Entry point of the workflow.

    ``config`` holds the trigger filters the editor lets users set
    (e.g. fromStatusId / toStatusId). They are stored but not evaluated.
    """

    kind: Literal["trigger"] = "trigger"
    trigger_type: str = Field(..., min_length=1)
    config: Dict[str, Any] = Field(default_factory=dict)

    def validate_node(self) -> None:
        pass


class ActionNode(BaseNode):
    """
    Applies one action from the fixed catalog (see ``ACTION_CONFIGS``).

    The raw ``config`` is kept as authored; ``typed_config()`` parses it into
    the config model for ``action_type``.
    """

    kind: Literal["action"] = "action"
    action_type: str
    config: Dict[str, Any] = Field(default_factory=dict)

    def typed_config(self) -> Optional[ActionConfig]:
        """
        Parse ``config`` for this action type.

        Returns:
            The typed config, or None if the action type is not in the catalog

        Raises:
            ValueError: If the config does not match the action's schema
        """
        config_class = ACTION_CONFIGS.get(self.action_type)
        if config_class is None:
            return None
        try:
            return config_class(**self.config)
        except ValidationError as e:
            raise ValueError(f"Invalid config for action '{self.action_type}': {e}") from e

    def validate_node(self) -> None:
        if self.action_type not in ACTION_CONFIGS:
            raise ValueError(
                f"Unknown action type: '{self.action_type}'. "
                f"Valid types: {list(ACTION_CONFIGS.keys())}"
            )
        missing = self.typed_config().missing_fields()
        if missing:
            raise ValueError(
                f"Action '{self.action_type}' on node {self.id} is missing: {', '.join(missing)}"
            )


class ConditionNode(BaseNode):
    """
    Branch group: chooses exactly one successor BranchNode per visit.

    ``conditions`` is only used for the older yes/no form, where a condition
    node has no branch children and routes by edge ``sourceHandle`` instead.
    """

    kind: Literal["condition"] = "condition"
    condition_type: Optional[str] = None
    conditions: Tuple[Condition, ...] = ()

    def validate_node(self) -> None:
        pass


class BranchNode(BaseNode):
    """
    One guarded branch of a ConditionNode.

    A branch with no conditions, or named "None", is the fallback taken when
    no conditioned branch matches.
    """

    kind: Literal["branch"] = "branch"
    branch_name: str = ""
    branch_index: Optional[int] = None
    conditions: Tuple[Condition, ...] = ()

    @property
    def is_fallback(self) -> bool:
        return not self.conditions or self.branch_name == "None"

    def validate_node(self) -> None:
        for condition in self.conditions:
            if not condition.field:
                raise ValueError(f"Branch '{self.branch_name}' has a condition without a field")


class UnknownNode(BaseNode):
    """A node kind this engine does not implement. Skipped at run time."""

    data: Dict[str, Any] = Field(default_factory=dict)

    def validate_node(self) -> None:
        raise ValueError(f"Unknown node type: '{self.kind}'")


NodeType = Union[TriggerNode, ActionNode, ConditionNode, BranchNode, UnknownNode]


def create_node_from_dict(node_data: Dict[str, Any]) -> NodeType:
    """
    Factory function: creates the appropriate node type from the editor's JSON.

    Unknown node kinds produce an ``UnknownNode`` rather than an error so that
    a run can skip them; ``validate_node()`` rejects them at save time.

    Args:
        node_data: Dictionary with ``id``, ``type`` and ``data`` keys

    Returns:
        Node instance of the appropriate type

    Raises:
        ValueError: If the node is malformed

    Example:
        >>> node = create_node_from_dict({
        ...     "id": "a1", "type": "action",
        ...     "data": {"label": "Tag it", "type": "add_tag", "config": {"tagId": "t1"}}
        ... })
        >>> node.action_type
        'add_tag'
    """
    kind = node_data.get("type")
    data = node_data.get("data") or {}
    node_id = node_data.get("id")
    label = data.get("label")

    try:
        if kind == "trigger":
            return TriggerNode(
                id=node_id,
                label=label,
                trigger_type=data.get("type"),
                config=data.get("config") or {},
            )

        if kind == "action":
            return ActionNode(
                id=node_id,
                label=label,
                action_type=data.get("type") or "",
                config=data.get("config") or {},
            )

        if kind == "condition":
            raw = data.get("conditions")
            if not raw:
                config = data.get("config") or {}
                raw = [config] if config.get("field") else []
            return ConditionNode(
                id=node_id,
                label=label,
                condition_type=data.get("type"),
                conditions=_parse_conditions(raw),
            )

        if kind == "branch":
            return BranchNode(
                id=node_id,
                label=label,
                branch_name=data.get("branchName") or label or "",
                branch_index=data.get("branchIndex"),
                conditions=_parse_conditions(data.get("conditions")),
            )

        return UnknownNode(id=node_id, kind=str(kind), label=label, data=data)

    except (ValidationError, TypeError) as e:
        raise ValueError(f"Failed to create {kind} node: {e}")
