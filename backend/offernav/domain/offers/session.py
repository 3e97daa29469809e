"""Session identity source for the offer tracking core."""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Protocol

SessionWatcher = Callable[[Optional[str]], None]


class SessionProvider(Protocol):
	@property
	def user_id(self) -> Optional[str]:
		...

	def watch(self, watcher: SessionWatcher) -> Callable[[], None]:
		...

	async def logout(self) -> None:
		...


class SessionState:
	"""In-process session holder that notifies watchers when the user changes."""

	def __init__(
		self,
		user_id: Optional[str] = None,
		*,
		logout_handler: Optional[Callable[[str], Awaitable[None]]] = None,
	) -> None:
		self._user_id = user_id
		self._logout_handler = logout_handler
		self._watchers: List[SessionWatcher] = []

	@property
	def user_id(self) -> Optional[str]:
		return self._user_id

	def set_user(self, user_id: Optional[str]) -> None:
		if user_id == self._user_id:
			return
		self._user_id = user_id
		for watcher in list(self._watchers):
			watcher(user_id)

	def watch(self, watcher: SessionWatcher) -> Callable[[], None]:
		self._watchers.append(watcher)

		def _unwatch() -> None:
			if watcher in self._watchers:
				self._watchers.remove(watcher)

		return _unwatch

	async def logout(self) -> None:
		user_id = self._user_id
		if user_id is not None and self._logout_handler is not None:
			await self._logout_handler(user_id)
		self.set_user(None)
