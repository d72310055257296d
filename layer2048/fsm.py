from __future__ import annotations

from statemachine import State, StateMachine

from layer2048.api.models import GamePhase


class MovePhaseFSM(StateMachine):
    """Two-phase move lifecycle of a GameEngine.

    - ready -> settling: a slide changed the current layer.
    - settling -> ready: the deferred spawn + status recheck ran.
    - restart: reset from either state drops any pending settle.
    """

    ready = State(GamePhase.ready.value, value=GamePhase.ready.value, initial=True)
    settling = State(GamePhase.settling.value, value=GamePhase.settling.value)

    slid = ready.to(settling)
    settled = settling.to(ready)
    restart = settling.to(ready) | ready.to.itself()

    def __init__(self, phase: GamePhase = GamePhase.ready):
        super().__init__(start_value=phase.value)

    @property
    def phase(self) -> GamePhase:
        return GamePhase(str(self.current_state.value))
