from __future__ import annotations

import asyncio
import json
import tempfile
import unittest
from pathlib import Path

import numpy as np
from fastapi.testclient import TestClient

from .geometry import FormatError
from .motion import RangeError
from .test_controller import ManualScheduler
from .web import ClientSession, _finish_session, _handle_text_message, _send_loop, create_app

BORDERS = {
    "border-left-width": "4px",
    "border-right-width": "4px",
    "border-top-width": "4px",
    "border-bottom-width": "4px",
}


def _hello(border: str = "4px") -> str:
    container_style = dict(BORDERS, **{"border-left-width": border})
    container = {"rect": {"x": 0, "y": 0, "width": 408, "height": 408}, "style": container_style}
    return json.dumps(
        {
            "t": "hello",
            "clientVersion": "test",
            "geometry": {
                "button": {"rect": {"x": 154, "y": 184, "width": 100, "height": 40}},
                "container": container,
                "trackingArea": container,
                "scroll": {"x": 0, "y": 0},
            },
        }
    )


class SessionMessageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scheduler = ManualScheduler()
        self.session = ClientSession(scheduler=self.scheduler, rng=np.random.default_rng(5))

    def tearDown(self) -> None:
        self.session.close()

    def drain(self) -> list[dict]:
        out = []
        while not self.session.outbox.empty():
            out.append(self.session.outbox.get_nowait())
        return out

    def send(self, **msg) -> None:
        _handle_text_message(json.dumps(msg), self.session)

    def test_hello_places_button(self) -> None:
        _handle_text_message(_hello(), self.session)
        self.assertEqual(
            self.drain(),
            [
                {"t": "button.place", "left": 150, "top": 180},
                {"t": "button.resting", "resting": True},
                {"t": "server.state", "ok": True, "ready": True, "bounds": [300, 360]},
            ],
        )

    def test_input_before_hello_is_rejected(self) -> None:
        for msg in (
            {"t": "pointer.move", "x": 1, "y": 1, "ts": 0},
            {"t": "pointer.leave", "ts": 0},
            {"t": "scroll", "scrollX": 0, "scrollY": 0, "ts": 0},
            {"t": "activate", "x": 0, "y": 0},
        ):
            with self.assertRaises(ValueError, msg=msg["t"]):
                self.send(**msg)

    def test_bad_geometry_is_a_format_error(self) -> None:
        with self.assertRaises(FormatError):
            _handle_text_message(_hello(border="thin"), self.session)
        self.assertIsNone(self.session.controller)

    def test_bad_json_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            _handle_text_message("{not json", self.session)

    def test_config_out_of_range(self) -> None:
        with self.assertRaises(RangeError):
            self.send(t="config", accel=0)
        self.assertEqual(self.session.config.accel, 25)

    def test_config_rebuilds_controller(self) -> None:
        _handle_text_message(_hello(), self.session)
        first = self.session.controller
        self.drain()
        self.send(t="config", activationSpeed=1234)
        self.assertIsNot(self.session.controller, first)
        assert self.session.controller is not None
        self.assertEqual(self.session.controller.config.activation_speed, 1234.0)
        self.assertEqual(self.drain()[-1], {"t": "server.state", "configured": True})

    def test_config_before_hello_is_kept(self) -> None:
        self.send(t="config", immunityMs=500)
        self.assertIsNone(self.session.controller)
        _handle_text_message(_hello(), self.session)
        assert self.session.controller is not None
        self.assertEqual(self.session.controller.config.immunity_ms, 500.0)

    def test_unknown_type_gets_error_frame(self) -> None:
        self.send(t="wave")
        self.assertEqual(self.drain(), [{"t": "error", "message": "Unknown message type: wave"}])

    def test_activate_throws_button(self) -> None:
        _handle_text_message(_hello(), self.session)
        self.drain()
        self.send(t="activate", x=10, y=10)
        self.assertEqual(
            self.drain(),
            [{"t": "button.resting", "resting": False}, {"t": "button.alert", "alert": True}],
        )
        self.scheduler.advance(20)
        places = [m for m in self.drain() if m["t"] == "button.place"]
        self.assertEqual(len(places), 2)
        # thrown away from the top left corner
        self.assertGreater(places[-1]["left"], 150)
        self.assertGreater(places[-1]["top"], 180)

    def test_pointer_hit_reports_hit(self) -> None:
        _handle_text_message(_hello(), self.session)
        self.drain()
        self.send(t="pointer.over", x=204, y=204, ts=0)
        out = self.drain()
        self.assertIn({"t": "button.hit", "hit": True}, out)
        self.assertIn({"t": "button.resting", "resting": False}, out)

    def test_pointer_sample_needs_timestamp(self) -> None:
        _handle_text_message(_hello(), self.session)
        with self.assertRaises(ValueError):
            self.send(t="pointer.move", x=1, y=1)

    def test_close_stops_motion(self) -> None:
        _handle_text_message(_hello(), self.session)
        self.send(t="activate")
        self.session.close()
        self.assertEqual(self.scheduler.live(repeating=True), [])
        self.assertEqual(self.scheduler.live(repeating=False), [])


class RecordingSocket:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(text))


class SenderTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.session = ClientSession(scheduler=ManualScheduler(), rng=np.random.default_rng(5))
        _handle_text_message(_hello(), self.session)

    async def test_frames_are_sent_in_order(self) -> None:
        ws = RecordingSocket()
        sender = asyncio.create_task(_send_loop(ws, self.session))  # type: ignore[arg-type]
        await asyncio.sleep(0)
        await _finish_session(self.session, sender)
        self.assertTrue(sender.cancelled())
        self.assertEqual([m["t"] for m in ws.sent], ["button.place", "button.resting", "server.state"])
        self.assertIsNone(self.session.controller)

    async def test_failed_send_stops_the_session(self) -> None:
        sender = asyncio.create_task(_send_loop(RecordingSocket(fail=True), self.session))  # type: ignore[arg-type]
        with self.assertRaises(ConnectionResetError):
            await sender
        # no controller left to tick into the outbox
        self.assertIsNone(self.session.controller)

        with self.assertLogs("dodge", level="WARNING") as logs:
            await _finish_session(self.session, sender)
        self.assertIn("Sending to the client failed: peer went away", logs.output[0])


class AppTests(unittest.TestCase):
    def test_serves_bundled_page(self) -> None:
        client = TestClient(create_app())
        resp = client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("Dodge Button", resp.text)

    def test_fallback_page_without_static_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            client = TestClient(create_app(static_dir=Path(tmp) / "missing"))
            resp = client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("No page found", resp.text)

    def test_websocket_hello_and_errors(self) -> None:
        client = TestClient(create_app())
        with client.websocket_connect("/ws") as ws:
            ws.send_text(_hello())
            self.assertEqual(ws.receive_json()["t"], "button.place")
            self.assertEqual(ws.receive_json()["t"], "button.resting")
            state = ws.receive_json()
            self.assertEqual(state["t"], "server.state")
            self.assertEqual(state["bounds"], [300, 360])

            ws.send_text(json.dumps({"t": "config", "tickMs": -1}))
            error = ws.receive_json()
            self.assertEqual(error["t"], "error")

            ws.send_bytes(b"\x00")
            self.assertEqual(ws.receive_json()["message"], "Binary frames are not supported")


if __name__ == "__main__":
    unittest.main()
