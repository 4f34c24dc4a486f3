from aiogram.fsm.state import State, StatesGroup


# FSM состояния для расчёта браслета, по одному на шаг сценария
class BraceletStates(StatesGroup):
    waiting_wrist = State()
    waiting_wraps = State()
    waiting_pattern = State()
    waiting_magnet = State()
    waiting_tolerance = State()


# Порядок состояний совпадает с номерами шагов 1..5
STEP_STATES: tuple[State, ...] = (
    BraceletStates.waiting_wrist,
    BraceletStates.waiting_wraps,
    BraceletStates.waiting_pattern,
    BraceletStates.waiting_magnet,
    BraceletStates.waiting_tolerance,
)


def state_for_step(step: int) -> State | None:
    if 1 <= step <= len(STEP_STATES):
        return STEP_STATES[step - 1]
    return None


def step_for_state(state: str | None) -> int:
    """Номер шага по строковому имени состояния (0, если состояние чужое)."""
    for index, candidate in enumerate(STEP_STATES, start=1):
        if candidate.state == state:
            return index
    return 0
