import unittest
from typing import List

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.features.term_drill import router as term_drill
from backend.features.term_drill.models import Concept, GameContentPreparation
from backend.features.term_drill.services.generation import ConceptGenerationRequest
from backend.features.term_drill.sessions import GameSessionManager
from backend.features.term_drill.store import InMemoryStudyStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _material_payload(material_id: str, names: List[str]) -> dict:
    return {
        "id": material_id,
        "title": "Vulkaner",
        "content": "Om vulkaner och berg.",
        "concepts": [{"term": name, "definition": f"Beskrivning nummer {i}."} for i, name in enumerate(names)],
    }


class TermDrillRouterTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStudyStore()
        self.clock = FakeClock()
        self.sessions = GameSessionManager(self.store, clock=self.clock)
        self.generated: List[ConceptGenerationRequest] = []

        def generator(request: ConceptGenerationRequest) -> List[Concept]:
            self.generated.append(request)
            return [Concept(term=name, definition=f"Genererad text {i}.") for i, name in enumerate(["aska", "gejser", "kratersjö"])]

        app = FastAPI()
        app.include_router(term_drill.router, prefix="/api")
        app.dependency_overrides[term_drill.get_store] = lambda: self.store
        app.dependency_overrides[term_drill.get_sessions] = lambda: self.sessions
        app.dependency_overrides[term_drill.get_concept_generator] = lambda: generator
        self.client = TestClient(app)

    def _prepare(self, game: str, **payload) -> dict:
        response = self.client.post(f"/api/term-drill/prepare/{game}", json=payload)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def test_materials_can_be_saved_and_listed(self) -> None:
        response = self.client.post("/api/term-drill/materials", json=_material_payload("m1", ["Vulkan"]))
        self.assertEqual(response.status_code, 200)

        listed = self.client.get("/api/term-drill/materials").json()

        self.assertEqual([item["id"] for item in listed], ["m1"])

    def test_prepare_existing_material(self) -> None:
        self.client.post("/api/term-drill/materials", json=_material_payload("m1", ["Vulkan", "Magma", "Lava"]))

        preparation = self._prepare("snake", materialIds=["m1"], minTerms=3)

        self.assertEqual(preparation["source"], "existing")
        self.assertFalse(preparation["needsReview"])
        self.assertEqual(preparation["materialIds"], ["m1"])
        self.assertEqual(len(preparation["terms"]), 3)
        self.assertEqual(self.generated, [])

    def test_preparation_errors_map_to_client_errors(self) -> None:
        missing = self.client.post("/api/term-drill/prepare/snake", json={"materialIds": ["saknas"]})
        no_topic = self.client.post("/api/term-drill/prepare/whack", json={"scope": "generated", "topicHint": "a"})
        unknown = self.client.post("/api/term-drill/prepare/tetris", json={})

        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["detail"]["code"], "material_not_found")
        self.assertEqual(no_topic.status_code, 400)
        self.assertEqual(no_topic.json()["detail"]["code"], "topic_hint_required")
        self.assertEqual(unknown.status_code, 404)

    def test_generated_session_needs_review_before_start(self) -> None:
        preparation = self._prepare("whack", scope="generated", topicHint="vulkaner")
        self.assertTrue(preparation["needsReview"])

        created = self.client.post("/api/term-drill/sessions", json={"game": "whack", "preparation": preparation})
        session_id = created.json()["sessionId"]
        blocked = self.client.post(f"/api/term-drill/sessions/{session_id}/start")

        self.assertEqual(blocked.status_code, 409)

        confirmed = self.client.post(
            "/api/term-drill/sessions",
            json={"game": "whack", "preparation": preparation, "confirmReview": True},
        ).json()
        started = self.client.post(f"/api/term-drill/sessions/{confirmed['sessionId']}/start")
        self.assertEqual(started.status_code, 200)
        self.assertEqual(started.json()["phase"], "playing")

    def test_whack_session_follows_wall_clock(self) -> None:
        self.client.post("/api/term-drill/materials", json=_material_payload("m1", ["Vulkan", "Magma", "Lava", "Krater"]))
        preparation = self._prepare("whack", materialIds=["m1"], minTerms=3)
        session_id = self.client.post(
            "/api/term-drill/sessions", json={"game": "whack", "preparation": preparation}
        ).json()["sessionId"]

        self.client.post(f"/api/term-drill/sessions/{session_id}/start")
        self.clock.now += 0.6
        snapshot = self.client.get(f"/api/term-drill/sessions/{session_id}").json()
        self.assertEqual(len(snapshot["board"]["moles"]), 3)
        self.assertIsNotNone(snapshot["prompt"])

        self.clock.now += 3.0
        snapshot = self.client.get(f"/api/term-drill/sessions/{session_id}").json()
        self.assertEqual(snapshot["lives"], 2)
        self.assertEqual(snapshot["results"][0]["reason"], "timeout")

        mistakes = self.client.get("/api/term-drill/materials/m1/mistakes").json()
        self.assertEqual(mistakes[0]["missCount"], 1)
        cleared = self.client.delete("/api/term-drill/materials/m1/mistakes").json()
        self.assertEqual(cleared["removed"], 1)
        self.assertEqual(self.client.get("/api/term-drill/materials/m1/mistakes").json(), [])

        aborted = self.client.post(f"/api/term-drill/sessions/{session_id}/abort").json()
        self.assertEqual(aborted["phase"], "finished")
        self.assertEqual(aborted["finishReason"], "aborted")
        self.assertEqual(len(self.store.game_sessions()), 1)

    def test_direction_is_snake_only(self) -> None:
        preparation = self._prepare("whack", scope="generated", topicHint="vulkaner")
        session_id = self.client.post(
            "/api/term-drill/sessions",
            json={"game": "whack", "preparation": preparation, "confirmReview": True},
        ).json()["sessionId"]

        wrong_game = self.client.post(f"/api/term-drill/sessions/{session_id}/direction", json={"direction": "up"})
        bad_direction = self.client.post(f"/api/term-drill/sessions/{session_id}/direction", json={"direction": "x"})

        self.assertEqual(wrong_game.status_code, 409)
        self.assertEqual(bad_direction.status_code, 400)

    def test_whack_rejects_holes_outside_the_board(self) -> None:
        preparation = self._prepare("whack", scope="generated", topicHint="vulkaner")
        session_id = self.client.post(
            "/api/term-drill/sessions",
            json={"game": "whack", "preparation": preparation, "confirmReview": True},
        ).json()["sessionId"]
        self.client.post(f"/api/term-drill/sessions/{session_id}/start")

        outside = self.client.post(f"/api/term-drill/sessions/{session_id}/whack", json={"holeIndex": 6})
        inside = self.client.post(f"/api/term-drill/sessions/{session_id}/whack", json={"holeIndex": 5})

        self.assertEqual(outside.status_code, 400)
        self.assertEqual(inside.status_code, 200)

    def test_unknown_and_deleted_sessions_return_404(self) -> None:
        preparation = self._prepare("snake", scope="generated", topicHint="vulkaner")
        session_id = self.client.post(
            "/api/term-drill/sessions",
            json={"game": "snake", "preparation": preparation, "confirmReview": True},
        ).json()["sessionId"]

        self.assertEqual(self.client.delete(f"/api/term-drill/sessions/{session_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/term-drill/sessions/{session_id}").status_code, 404)
        self.assertEqual(self.client.post("/api/term-drill/sessions/okand/start").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/term-drill/sessions/{session_id}").status_code, 404)

    def test_game_config_describes_both_games(self) -> None:
        config = self.client.get("/api/term-drill/game-config").json()

        self.assertEqual(set(config["games"]), {"snake", "whack"})
        self.assertEqual(config["games"]["snake"]["gridSize"], 12)
        self.assertEqual(config["games"]["whack"]["holes"], 6)


class GameSessionManagerTest(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.manager = GameSessionManager(InMemoryStudyStore(), clock=self.clock, idle_seconds=60)
        preparation_terms = [
            {"materialId": "m1", "term": name, "definition": f"Text {i}.", "source": "concept", "language": "sv"}
            for i, name in enumerate(["Vulkan", "Magma", "Lava"])
        ]
        self.preparation = GameContentPreparation.model_validate(
            {"terms": preparation_terms, "language": "sv", "source": "existing", "needsReview": False, "materialIds": ["m1"]}
        )

    def test_idle_sessions_are_purged_and_closed(self) -> None:
        stale = self.manager.create("snake", self.preparation)
        self.manager.run(stale.id, lambda engine: engine.start())
        self.clock.now += 45
        fresh = self.manager.create("whack", self.preparation)
        self.clock.now += 30

        purged = self.manager.purge_idle()

        self.assertEqual(purged, [stale.id])
        self.assertTrue(stale.engine.closed)
        self.assertEqual(stale.engine.scheduler.pending(), 0)
        self.assertEqual(len(self.manager), 1)
        self.assertIs(self.manager.get(fresh.id), fresh)

    def test_session_clock_drives_snake_ticks(self) -> None:
        session = self.manager.create("snake", self.preparation)
        self.manager.run(session.id, lambda engine: engine.start())
        session.engine.board.tokens = []

        self.clock.now += 0.43
        snapshot = self.manager.snapshot(session.id)

        self.assertEqual(snapshot["board"]["snake"][0], [8, 6])
        self.assertEqual(snapshot["sessionId"], session.id)


if __name__ == "__main__":
    unittest.main()
