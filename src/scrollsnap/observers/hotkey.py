from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

log = logging.getLogger("Hotkey")


class StopHotkey:
    """Global key listener that stops the active capture session.

    Parameters
    ----------
    on_stop : callable
        Invoked from the listener thread when a stop key is pressed,
        typically :meth:`CaptureScheduler.stop_active`.
    keys : iterable of str
        Special key names (``"esc"``, ``"f9"``, as in ``pynput.keyboard.Key``)
        or single characters.
    """

    DEFAULT_KEYS = ("esc", "f9")

    def __init__(
        self, on_stop: Callable[[], object], keys: Iterable[str] = DEFAULT_KEYS
    ) -> None:
        self._on_stop = on_stop
        self._names = [k.lower() for k in keys]
        if not self._names:
            raise ValueError("At least one stop key is required")
        self._special: set = set()
        self._chars: set = set()
        self._listener = None

    def _resolve(self, keyboard) -> None:
        self._special.clear()
        self._chars.clear()
        for name in self._names:
            special = getattr(keyboard.Key, name, None)
            if special is not None:
                self._special.add(special)
            elif len(name) == 1:
                self._chars.add(name)
            else:
                raise ValueError(f"Unknown key name: {name!r}")

    def _on_press(self, key) -> None:
        char: Optional[str] = getattr(key, "char", None)
        if key in self._special or (char is not None and char.lower() in self._chars):
            log.info(f"Stop key {key} pressed")
            self._on_stop()

    def start(self) -> None:
        if self._listener is not None:
            return
        # deferred: pynput needs a running display server at import time on X11
        from pynput import keyboard

        self._resolve(keyboard)
        self._listener = keyboard.Listener(on_press=self._on_press)
        self._listener.start()
        log.info(f"Listening for stop keys: {', '.join(self._names)}")

    def stop(self) -> None:
        if self._listener is None:
            return
        self._listener.stop()
        self._listener = None

    def __enter__(self) -> "StopHotkey":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
