import random
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from blackjack_rooms import main
from blackjack_rooms.api.deps import get_session_manager
from blackjack_rooms.db.base import Base
from blackjack_rooms.db.session import get_db
from blackjack_rooms.services.rate_limit_service import RateLimitService
from blackjack_rooms.services.room_service import RoomRegistry, RoundSummary
from blackjack_rooms.services.session_service import SessionManager
from blackjack_rooms.services.stats_service import record_round_results


class HttpRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.manager = SessionManager(RoomRegistry(rng=random.Random(4)))

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        main.api_app.dependency_overrides[get_db] = override_get_db
        main.api_app.dependency_overrides[get_session_manager] = lambda: self.manager
        self.rate_limit_patch = patch.object(main, "rate_limit_service", new=RateLimitService(use_redis=False))
        self.rate_limit_patch.start()
        self.client = TestClient(main.api_app)
        self.prefix = main.settings.api_prefix

    def tearDown(self) -> None:
        self.rate_limit_patch.stop()
        main.api_app.dependency_overrides.clear()
        self.engine.dispose()

    def test_health_reports_room_count(self) -> None:
        self.manager.create_room("player-aaa", "Ann")
        response = self.client.get(f"{self.prefix}/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "rooms": 1})

    def test_rooms_listing_and_snapshot(self) -> None:
        room, _ = self.manager.create_room("player-aaa", "Ann")
        self.manager.join_room("player-bbb", room.code, "Bob")

        listing = self.client.get(f"{self.prefix}/rooms").json()
        self.assertEqual(len(listing), 1)
        self.assertEqual(listing[0]["code"], room.code)
        self.assertEqual(listing[0]["player_count"], 2)
        self.assertEqual(listing[0]["phase"], "lobby")

        snapshot = self.client.get(f"{self.prefix}/rooms/{room.code}")
        self.assertEqual(snapshot.status_code, 200)
        body = snapshot.json()
        self.assertEqual(body["host_id"], "player-aaa")
        self.assertEqual([player["name"] for player in body["players"]], ["Ann", "Bob"])
        self.assertFalse(body["reveal_dealer"])

    def test_unknown_room_is_404(self) -> None:
        response = self.client.get(f"{self.prefix}/rooms/0000")
        self.assertEqual(response.status_code, 404)

    def test_player_stats_routes(self) -> None:
        db = self.SessionLocal()
        try:
            record_round_results(
                db,
                [
                    RoundSummary(
                        player_id="player-aaa",
                        room_code="1234",
                        round_number=1,
                        hands_played=1,
                        hands_won=1,
                        hands_lost=0,
                        hands_pushed=0,
                        blackjacks=1,
                        chips_delta=150,
                    )
                ],
            )
        finally:
            db.close()

        history = self.client.get(f"{self.prefix}/stats/player-aaa/history", params={"limit": 5})
        self.assertEqual(history.status_code, 200)
        self.assertEqual(history.json()[0]["chips_delta"], 150)

        summary = self.client.get(f"{self.prefix}/stats/player-aaa/summary").json()
        self.assertEqual(summary["rounds_played"], 1)
        self.assertEqual(summary["win_rate"], 100.0)

        invalid = self.client.get(f"{self.prefix}/stats/player-aaa/history", params={"limit": 0})
        self.assertEqual(invalid.status_code, 422)

    def test_api_rate_limit(self) -> None:
        with patch.object(main.settings, "rate_limit_enabled", True), patch.object(
            main.settings, "api_rate_limit", 2
        ):
            statuses = [self.client.get(f"{self.prefix}/rooms").status_code for _ in range(3)]
            health = self.client.get(f"{self.prefix}/health")
        self.assertEqual(statuses, [200, 200, 429])
        self.assertEqual(health.status_code, 200)
