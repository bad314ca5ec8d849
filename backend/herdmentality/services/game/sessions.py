"""Connection bookkeeping.

Socket.IO connection ids change on every reconnect, so players are tracked
by their stable id and the registry maps each live connection onto a
(room, player) pair. It also keeps the set of connections per room, which is
what room broadcasts are delivered to.
"""
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from herdmentality.models import Player
from herdmentality.services.game import rooms
from herdmentality.services.game.errors import InvalidState, UnknownPlayer


@dataclass(frozen=True)
class Binding:
    room_id: int
    player_id: int


class SessionRegistry:
    def __init__(self) -> None:
        self._by_sid: Dict[str, Binding] = {}
        self._sid_by_player: Dict[int, str] = {}
        self._members: Dict[int, Set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def bind(self, sid: str, room_id: int, player_id: int) -> Optional[str]:
        """Attach ``sid`` to a player. Returns the connection it superseded, if any."""
        with self._lock:
            self._drop_sid(sid)
            previous = self._sid_by_player.get(player_id)
            if previous is not None and previous != sid:
                self._drop_sid(previous)
            self._by_sid[sid] = Binding(room_id, player_id)
            self._sid_by_player[player_id] = sid
            self._members[room_id].add(sid)
            return previous if previous != sid else None

    def unbind(self, sid: str) -> Optional[Binding]:
        with self._lock:
            return self._drop_sid(sid)

    def lookup(self, sid: str) -> Optional[Binding]:
        with self._lock:
            return self._by_sid.get(sid)

    def require(self, sid: str, room_id=None) -> Binding:
        binding = self.lookup(sid)
        if binding is None:
            raise UnknownPlayer('This connection has not joined a game')
        if room_id is not None and room_id != binding.room_id:
            raise InvalidState('This connection is joined to a different game')
        return binding

    def sid_for(self, player_id: int) -> Optional[str]:
        with self._lock:
            return self._sid_by_player.get(player_id)

    def connections(self, room_id: int) -> List[str]:
        with self._lock:
            return sorted(self._members.get(room_id, ()))

    def drop_room(self, room_id: int) -> None:
        with self._lock:
            for sid in list(self._members.get(room_id, ())):
                self._drop_sid(sid)
            self._members.pop(room_id, None)

    def clear(self) -> None:
        with self._lock:
            self._by_sid.clear()
            self._sid_by_player.clear()
            self._members.clear()

    def _drop_sid(self, sid: str) -> Optional[Binding]:
        binding = self._by_sid.pop(sid, None)
        if binding is None:
            return None
        if self._sid_by_player.get(binding.player_id) == sid:
            del self._sid_by_player[binding.player_id]
        members = self._members.get(binding.room_id)
        if members is not None:
            members.discard(sid)
            if not members:
                del self._members[binding.room_id]
        return binding


registry = SessionRegistry()


def attach(sid: str, outcome: rooms.Outcome) -> rooms.Outcome:
    """Bind the caller's connection to the player an operation created or restored."""
    if outcome.room_id is not None and outcome.player_id is not None:
        registry.bind(sid, outcome.room_id, outcome.player_id)
    return outcome


def disconnect(sid: str) -> rooms.Outcome:
    """Forget a connection and mark its player disconnected.

    Falls back to the player table when the registry has no entry, e.g. for a
    connection bound by another worker before a restart.
    """
    binding = registry.unbind(sid)
    if binding is None:
        player = Player.query.filter_by(sid=sid, connected=True).first()
        if player is None:
            return rooms.Outcome()
        binding = Binding(player.game_id, player.id)
    return rooms.leave_room(binding.room_id, binding.player_id, sid)


def switch(sid: str) -> rooms.Outcome:
    """Release the caller's current player, if any, before it joins as someone else."""
    if registry.lookup(sid) is None:
        return rooms.Outcome()
    return disconnect(sid)


def reconnect(sid: str, room_id, room_code, display_name) -> rooms.Outcome:
    """Restore a disconnected player onto a new connection."""
    return attach(sid, rooms.rejoin_room(room_id, room_code, display_name, sid=sid))


def remove(sid: str, room_id, target_id) -> rooms.Outcome:
    binding = registry.require(sid, room_id)
    outcome = rooms.remove_player(binding.room_id, binding.player_id, target_id)
    if outcome.released_sid:
        registry.unbind(outcome.released_sid)
    return outcome
