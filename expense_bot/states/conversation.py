"""
Состояние диалога пользователя с ботом.

Каждый сценарий (flow) объявляет свой `StatesGroup` шагов, поэтому шаг — это
всегда пара «сценарий + позиция в нём»: `state.flow` возвращает группу,
`state.step` — её `State`. Данные, которые нужны только активному сценарию,
лежат в `flow_data` и типизированы отдельными dataclass'ами. При переходе в
шаг другого сценария `flow_data` сбрасывается автоматически.

Между апдейтами состояние живёт в FSM storage aiogram: шаг — через
`FSMContext.set_state`, остальное — снимком в данных FSM (`load_conversation` /
`save_conversation`).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, TypeVar, Union

from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup

STATE_DATA_KEY = "conv"


class MainMenuStep(StatesGroup):
    MAIN_MENU = State()


class InsertExpenseStep(StatesGroup):
    SELECT_CATEGORY = State()
    SELECT_SUBCATEGORY = State()
    SELECT_TAG = State()
    ENTER_DESCRIPTION = State()
    ENTER_AMOUNT = State()
    SELECT_DATE = State()


class SettingsStep(StatesGroup):
    ROOT = State()


class ExpenseSettingsStep(StatesGroup):
    SELECT_ACTION = State()
    ADD_CATEGORY = State()
    SELECT_CATEGORY_FOR_SUB = State()
    ADD_SUBCATEGORY = State()
    ASK_TAGS = State()
    ADD_TAG = State()


class ImportStep(StatesGroup):
    ENTER_YEAR = State()
    WAIT_FILE = State()


Step = State

STEP_GROUPS = (MainMenuStep, InsertExpenseStep, SettingsStep, ExpenseSettingsStep, ImportStep)
_STEPS_BY_NAME: dict[str, State] = {s.state: s for g in STEP_GROUPS for s in g.__all_states__}


def step_by_name(name: str | None) -> State | None:
    """`State` по строке из FSM storage (например 'ImportStep:WAIT_FILE')."""
    if name is None:
        return None
    return _STEPS_BY_NAME.get(name)


@dataclass
class ImportFlowData:
    """Данные сценария импорта: выбранный год бюджета."""
    year: int | None = None


@dataclass
class TagCreationData:
    """Данные цикла добавления тегов к только что созданной подкатегории."""
    subcategory_id: int
    subcategory_name: str
    category_name: str
    tags: list[str] = field(default_factory=list)


FlowData = Union[ImportFlowData, TagCreationData]

FlowDataT = TypeVar("FlowDataT", ImportFlowData, TagCreationData)

# метка варианта в снимке flow_data
_FLOW_DATA_KINDS: dict[str, type] = {"import": ImportFlowData, "tags": TagCreationData}


def _dump_flow_data(data: FlowData | None) -> dict[str, Any] | None:
    if data is None:
        return None
    kind = next(k for k, cls in _FLOW_DATA_KINDS.items() if isinstance(data, cls))
    return {"kind": kind, **asdict(data)}


def _load_flow_data(raw: Mapping[str, Any] | None) -> FlowData | None:
    if not raw:
        return None
    fields = dict(raw)
    cls = _FLOW_DATA_KINDS.get(fields.pop("kind", None))
    if cls is None:
        return None
    return cls(**fields)


class ConversationState:
    """Изменяемое состояние одного пользователя.

    Валидации здесь нет: за корректность значений отвечает сценарий,
    который их записывает.
    """

    def __init__(self) -> None:
        self._step: State = MainMenuStep.MAIN_MENU
        self.flow_data: FlowData | None = None
        self._clear_fields()

    def _clear_fields(self) -> None:
        self.selected_category_id: int | None = None
        self.selected_category_name: str | None = None
        self.selected_subcategory_id: int | None = None
        self.selected_subcategory_name: str | None = None
        self.selected_tag_id: int | None = None
        self.selected_tag_name: str | None = None
        self.description: str | None = None
        self.amount: Decimal | None = None
        self.selected_date: date | None = None
        self.last_bot_message_id: int | None = None
        self.main_menu_message_id: int | None = None
        self.flow_message_ids: list[int] = []

    @property
    def step(self) -> State:
        return self._step

    @step.setter
    def step(self, value: State) -> None:
        # flow_data принадлежит сценарию: при смене сценария его данные недействительны
        if value.group is not self._step.group:
            self.flow_data = None
        self._step = value

    @property
    def flow(self) -> type[StatesGroup]:
        return self._step.group

    @property
    def in_main_menu(self) -> bool:
        return self._step is MainMenuStep.MAIN_MENU

    def get_flow_data(self, cls: type[FlowDataT]) -> FlowDataT | None:
        if isinstance(self.flow_data, cls):
            return self.flow_data
        return None

    def track_flow_message(self, message_id: int) -> None:
        if message_id not in self.flow_message_ids:
            self.flow_message_ids.append(message_id)

    def reset(self) -> None:
        self._step = MainMenuStep.MAIN_MENU
        self.flow_data = None
        self._clear_fields()

    # ---------- снимок для FSM storage ----------

    def to_dict(self) -> dict[str, Any]:
        """Снимок без шага: шаг хранится отдельно как FSM state.

        Decimal и date пишутся строками, чтобы снимок годился и для Redis-хранилища.
        """
        return {
            "flow_data": _dump_flow_data(self.flow_data),
            "selected_category_id": self.selected_category_id,
            "selected_category_name": self.selected_category_name,
            "selected_subcategory_id": self.selected_subcategory_id,
            "selected_subcategory_name": self.selected_subcategory_name,
            "selected_tag_id": self.selected_tag_id,
            "selected_tag_name": self.selected_tag_name,
            "description": self.description,
            "amount": str(self.amount) if self.amount is not None else None,
            "selected_date": self.selected_date.isoformat() if self.selected_date else None,
            "last_bot_message_id": self.last_bot_message_id,
            "main_menu_message_id": self.main_menu_message_id,
            "flow_message_ids": list(self.flow_message_ids),
        }

    @classmethod
    def from_dict(cls, step: State | None, data: Mapping[str, Any] | None) -> ConversationState:
        state = cls()
        if step is None:
            # неизвестный или пустой шаг: пользователь начинает с главного меню
            return state
        data = data or {}
        state._step = step
        state.flow_data = _load_flow_data(data.get("flow_data"))
        state.selected_category_id = data.get("selected_category_id")
        state.selected_category_name = data.get("selected_category_name")
        state.selected_subcategory_id = data.get("selected_subcategory_id")
        state.selected_subcategory_name = data.get("selected_subcategory_name")
        state.selected_tag_id = data.get("selected_tag_id")
        state.selected_tag_name = data.get("selected_tag_name")
        state.description = data.get("description")
        amount = data.get("amount")
        state.amount = Decimal(amount) if amount is not None else None
        selected_date = data.get("selected_date")
        state.selected_date = date.fromisoformat(selected_date) if selected_date else None
        state.last_bot_message_id = data.get("last_bot_message_id")
        state.main_menu_message_id = data.get("main_menu_message_id")
        state.flow_message_ids = list(data.get("flow_message_ids") or [])
        return state

    def __repr__(self) -> str:
        return f"ConversationState(step={self._step.state!r}, flow_data={self.flow_data!r})"


async def load_conversation(fsm: FSMContext) -> ConversationState:
    """Состояние пользователя из FSM storage (пустое — главное меню)."""
    step = step_by_name(await fsm.get_state())
    data = await fsm.get_data()
    return ConversationState.from_dict(step, data.get(STATE_DATA_KEY))


async def save_conversation(fsm: FSMContext, state: ConversationState) -> None:
    await fsm.set_state(state.step)
    await fsm.update_data({STATE_DATA_KEY: state.to_dict()})
