"""Dispenser simulator — publishes plausible device events for local development."""

import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from config import Settings, configure_logging
from ingest.publisher import EventPublisher
from models.events import ActionKind, Device, Event

DEVICE_MODEL = "LibraV0"


@dataclass
class DispenserState:
    """
    One scale-backed dispenser. Serves portions until the bin runs out,
    waits to be refilled, and sends heartbeats in between. Rarely drops offline.
    """

    serial_number: str
    location: str
    ingredient: str
    capacity: float = 2000.0
    level: float = 2000.0
    started: bool = False
    online: bool = True

    def next_action(self, rng: random.Random) -> tuple[ActionKind, float]:
        if not self.started or not self.online:
            self.started = True
            self.online = True
            return ActionKind.STARTING, self.level
        if self.level <= 0:
            if rng.random() < 0.3:
                self.level = self.capacity
                return ActionKind.REFILLED, self.level
            return ActionKind.HEARTBEAT, 0.0
        roll = rng.random()
        if roll < 0.01:
            self.online = False
            return ActionKind.OFFLINE, self.level
        if roll < 0.4:
            return ActionKind.HEARTBEAT, self.level
        portion = round(min(self.level, rng.uniform(40.0, 180.0)), 1)
        self.level = round(self.level - portion, 1)
        if self.level <= 0:
            return ActionKind.RAN_OUT, portion
        return ActionKind.SERVED, portion


class DeviceSimulator:
    """Drives a fleet of DispenserStates, publishing one event per tick until stopped."""

    def __init__(
        self,
        settings: Settings,
        publisher: EventPublisher | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.log = configure_logging("device-simulator", settings.log_level)
        self._publisher = publisher or EventPublisher(settings)
        self._rng = rng or random.Random()
        self._running = True
        self.devices = [
            DispenserState(
                serial_number=f"Lib{298190 + i}",
                location=settings.sim_locations[i % len(settings.sim_locations)],
                ingredient=settings.sim_ingredients[i % len(settings.sim_ingredients)],
            )
            for i in range(settings.sim_num_devices)
        ]
        self._interval = settings.sim_publish_interval_ms / 1000.0
        self.log.info("devices_initialized", count=len(self.devices))

    def build_event(self) -> Event:
        device = self._rng.choice(self.devices)
        action, amount = device.next_action(self._rng)
        return Event(
            device=Device(model=DEVICE_MODEL, serial_number=device.serial_number),
            location=device.location,
            ingredient=device.ingredient,
            action=action,
            amount=amount,
            timestamp=datetime.now(timezone.utc),
        )

    def next_interval(self) -> float:
        # Jitter avoids synchronized bursts
        return self._interval * (0.8 + self._rng.random() * 0.4)

    def run(self, max_events: int | None = None) -> int:
        published = 0
        try:
            while self._running and (max_events is None or published < max_events):
                self._publisher.publish(self.build_event())
                published += 1
                time.sleep(self.next_interval())
        finally:
            self._publisher.close()
        self.log.info("simulator_stopped", published=published)
        return published

    def stop(self, signum=None, frame=None):
        self._running = False
