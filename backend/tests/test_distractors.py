import random
import unittest

from backend.features.term_drill.models import MistakeEntry, Term
from backend.features.term_drill.services.distractors import (
    build_distractors,
    build_mistake_weights,
    prioritize,
    round_distractors,
    shuffle,
)


def _term(name: str) -> Term:
    return Term(material_id="m1", term=name, definition=f"Definition av {name}", source="concept", language="sv")


def _mistake(material_id: str, term: str, count: int) -> MistakeEntry:
    return MistakeEntry(
        material_id=material_id,
        term=term,
        language="sv",
        miss_count=count,
        last_missed_at="2024-01-01T00:00:00+00:00",
    )


class ShuffleTest(unittest.TestCase):
    def test_shuffle_is_a_permutation_and_leaves_input_alone(self) -> None:
        items = list(range(20))

        shuffled = shuffle(items, random.Random(3))

        self.assertEqual(sorted(shuffled), items)
        self.assertEqual(items, list(range(20)))

    def test_seeded_shuffle_is_reproducible(self) -> None:
        self.assertEqual(shuffle("abcdef", random.Random(9)), shuffle("abcdef", random.Random(9)))


class BuildDistractorsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.terms = [_term(name) for name in ["Vulkan", "Magma", "Lava", "Krater", "Aska", "Skorpa"]]

    def test_distractors_never_contain_the_target(self) -> None:
        target = _term("vulkan")
        for seed in range(25):
            distractors = build_distractors(target, self.terms, 4, random.Random(seed))
            self.assertNotIn("vulkan", [item.lower() for item in distractors])
            self.assertEqual(len(distractors), len(set(item.lower() for item in distractors)))

    def test_size_is_bounded_by_request_and_pool(self) -> None:
        rng = random.Random(1)

        self.assertEqual(len(build_distractors(self.terms[0], self.terms, 4, rng)), 4)
        self.assertEqual(len(build_distractors(self.terms[0], self.terms, 10, rng)), 5)
        self.assertEqual(len(build_distractors(self.terms[0], self.terms, 0, rng)), 2)

    def test_small_pool_degrades_gracefully(self) -> None:
        terms = [_term("Vulkan"), _term("Magma")]

        self.assertEqual(build_distractors(terms[0], terms, 4, random.Random(0)), ["Magma"])
        self.assertEqual(build_distractors(terms[0], [terms[0]], 4, random.Random(0)), [])

    def test_case_variants_count_once(self) -> None:
        terms = [_term("Vulkan"), _term("Magma"), _term("MAGMA"), _term("Lava")]

        distractors = build_distractors(terms[0], terms, 4, random.Random(2))

        self.assertEqual(sorted(distractors), ["Lava", "Magma"])


class RoundDistractorsTest(unittest.TestCase):
    def test_prepared_distractors_come_first(self) -> None:
        terms = [_term(name) for name in ["Vulkan", "Magma", "Lava", "Krater", "Aska"]]

        labels = round_distractors(terms[0], ["Lava", "Aska"], terms, 2, random.Random(4))

        self.assertEqual(sorted(labels), ["Aska", "Lava"])

    def test_other_terms_top_up_higher_tiers(self) -> None:
        terms = [_term(name) for name in ["Vulkan", "Magma", "Lava", "Krater", "Aska"]]

        labels = round_distractors(terms[0], ["Lava", "vulkan"], terms, 4, random.Random(4))

        self.assertEqual(labels[0], "Lava")
        self.assertEqual(sorted(labels), ["Aska", "Krater", "Lava", "Magma"])


class PrioritizeTest(unittest.TestCase):
    def test_missed_terms_move_to_the_front(self) -> None:
        terms = [_term(name) for name in ["Vulkan", "Magma", "Lava", "Krater"]]
        bank = {"m1": {"lava": _mistake("m1", "Lava", 2), "krater": _mistake("m1", "Krater", 5)}}

        ordered = prioritize(terms, ["m1"], bank)

        self.assertEqual([item.term for item in ordered], ["Krater", "Lava", "Vulkan", "Magma"])

    def test_ties_keep_original_order(self) -> None:
        terms = [_term(name) for name in ["Vulkan", "Magma", "Lava", "Krater"]]
        bank = {"m1": {"magma": _mistake("m1", "Magma", 1), "krater": _mistake("m1", "Krater", 1)}}

        ordered = prioritize(terms, ["m1"], bank)

        self.assertEqual([item.term for item in ordered], ["Magma", "Krater", "Vulkan", "Lava"])

    def test_empty_bank_is_identity(self) -> None:
        terms = [_term(name) for name in ["Vulkan", "Magma"]]

        self.assertEqual(prioritize(terms, ["m1"], {}), terms)

    def test_weights_sum_across_materials_case_insensitively(self) -> None:
        bank = {
            "m1": {"lava": _mistake("m1", "Lava", 2)},
            "m2": {"lava": _mistake("m2", "LAVA", 3)},
            "m3": {"lava": _mistake("m3", "lava", 7)},
        }

        self.assertEqual(build_mistake_weights(bank, ["m1", "m2"]), {"lava": 5})


if __name__ == "__main__":
    unittest.main()
