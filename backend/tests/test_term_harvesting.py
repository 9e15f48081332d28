import unittest

from backend.features.term_drill.models import Concept, Flashcard, GlossaryEntry, Material, Term
from backend.features.term_drill.services.terms import (
    aggregate,
    collect_material_terms,
    from_concepts,
    from_flashcards,
    from_glossary,
    mask_term_in_definition,
)


def _term(term: str, definition: str, source: str = "concept", examples=None) -> Term:
    return Term(
        material_id="m1",
        term=term,
        definition=definition,
        examples=examples or [],
        source=source,
        language="sv",
    )


class SourceAdapterTest(unittest.TestCase):
    def test_concepts_without_term_or_definition_are_dropped(self) -> None:
        concepts = [
            Concept(term="Vulkan", definition="Ett berg som kan få utbrott."),
            Concept(term="   ", definition="Saknar begrepp."),
            Concept(term="Magma", definition=""),
            Concept(term=None, definition=None),
        ]

        terms = from_concepts(concepts, "m1", "sv", mask=False)

        self.assertEqual([item.term for item in terms], ["Vulkan"])
        self.assertEqual(terms[0].source, "concept")
        self.assertEqual(terms[0].material_id, "m1")

    def test_fields_are_trimmed_and_examples_deduplicated(self) -> None:
        concept = Concept(
            id="c1",
            term="  Lava ",
            definition=" Smält berg som rinner ut. ",
            examples=[" Lavan rann. ", "Lavan rann.", "", None, "Het lava.", "Svart lava.", "Mer lava."],
        )

        [term] = from_concepts([concept], "m1", "sv", mask=False)

        self.assertEqual(term.id, "c1")
        self.assertEqual(term.term, "Lava")
        self.assertEqual(term.definition, "Smält berg som rinner ut.")
        self.assertEqual(term.examples, ["Lavan rann.", "Het lava.", "Svart lava."])

    def test_only_term_definition_flashcards_are_harvested(self) -> None:
        cards = [
            Flashcard(front="Krater", back="Öppningen i toppen av en vulkan.", type="term-definition"),
            Flashcard(front="Vad är magma?", back="Smält sten under jord.", type="question-answer"),
            Flashcard(front="Aska", back="Fint damm", type=None),
        ]

        terms = from_flashcards(cards, "m1", "sv", mask=False)

        self.assertEqual([item.term for item in terms], ["Krater"])
        self.assertEqual(terms[0].source, "flashcard")
        self.assertEqual(terms[0].examples, [])

    def test_glossary_entries_carry_their_single_example(self) -> None:
        entries = [
            GlossaryEntry(term="Skorpa", definition="Jordens yttersta lager.", example="Skorpan är tunn."),
            GlossaryEntry(term="Mantel", definition="Lagret under skorpan."),
        ]

        terms = from_glossary(entries, "m1", "sv", mask=False)

        self.assertEqual(terms[0].examples, ["Skorpan är tunn."])
        self.assertEqual(terms[1].examples, [])
        self.assertTrue(all(item.source == "glossary" for item in terms))

    def test_collect_material_terms_merges_all_sources(self) -> None:
        material = Material(
            id="m1",
            title="Vulkaner",
            concepts=[Concept(term="Vulkan", definition="Berg med utbrott.")],
            flashcards=[
                Flashcard(front="vulkan", back="Ett berg där smält sten tränger upp.", type="term-definition")
            ],
            glossary=[GlossaryEntry(term="Magma", definition="Smält sten under marken.")],
        )

        terms = collect_material_terms(material, "sv", mask=False)

        self.assertEqual([item.term for item in terms], ["Vulkan", "Magma"])
        self.assertEqual(terms[0].definition, "Ett berg där smält sten tränger upp.")


class AggregateTest(unittest.TestCase):
    def test_duplicates_collapse_case_insensitively_in_first_seen_order(self) -> None:
        terms = aggregate(
            [
                _term("Vulkan", "Kort."),
                _term("Magma", "Smält sten."),
                _term("VULKAN", "En mycket längre definition."),
            ]
        )

        self.assertEqual([item.term for item in terms], ["Vulkan", "Magma"])
        self.assertEqual(terms[0].definition, "En mycket längre definition.")

    def test_equal_length_definitions_keep_the_first(self) -> None:
        terms = aggregate([_term("Lava", "abc"), _term("lava", "xyz")])

        self.assertEqual(len(terms), 1)
        self.assertEqual(terms[0].definition, "abc")

    def test_examples_are_unioned_and_capped(self) -> None:
        terms = aggregate(
            [
                _term("Lava", "Smält sten.", examples=["a", "b"]),
                _term("lava", "Smält sten.", examples=["b", "c", "d"]),
            ]
        )

        self.assertEqual(terms[0].examples, ["a", "b", "c"])

    def test_generated_provenance_is_sticky(self) -> None:
        forwards = aggregate([_term("Lava", "x", "concept"), _term("lava", "y", "generated")])
        backwards = aggregate([_term("Lava", "x", "generated"), _term("lava", "y", "glossary")])

        self.assertEqual(forwards[0].source, "generated")
        self.assertEqual(backwards[0].source, "generated")

    def test_aggregate_is_idempotent(self) -> None:
        once = aggregate(
            [
                _term("Vulkan", "Berg."),
                _term("vulkan", "Berg med utbrott.", examples=["Etna"]),
                _term("Magma", "Smält sten.", "generated"),
            ]
        )
        twice = aggregate(once)

        self.assertEqual([item.model_dump() for item in twice], [item.model_dump() for item in once])

    def test_output_has_no_case_insensitive_duplicates(self) -> None:
        terms = aggregate([_term(name, "d") for name in ["A", "a", "B", "b", "c", "C", "a"]])

        keys = [item.term.lower() for item in terms]
        self.assertEqual(len(keys), len(set(keys)))
        self.assertEqual(keys, ["a", "b", "c"])


class MaskDefinitionTest(unittest.TestCase):
    def test_term_is_replaced_with_placeholder(self) -> None:
        masked = mask_term_in_definition("vulkan", "En vulkan är ett berg med utbrott.")

        self.assertEqual(masked, "En [...] är ett berg med utbrott.")

    def test_definite_form_keeps_its_ending(self) -> None:
        masked = mask_term_in_definition("Fotosyntes", "Fotosyntesen omvandlar ljus till energi.")

        self.assertEqual(masked, "[...]en omvandlar ljus till energi.")

    def test_long_words_of_multi_word_terms_are_masked(self) -> None:
        masked = mask_term_in_definition("sur nederbörd", "Regn som är surt kallas nederbörd av typen sur.")

        self.assertNotIn("nederbörd", masked)
        self.assertIn("[...]", masked)

    def test_adjacent_placeholders_collapse(self) -> None:
        masked = mask_term_in_definition("vatten kraft", "Kraft vatten ger el.")

        self.assertEqual(masked, "[...] ger el.")

    def test_unrelated_definition_is_untouched(self) -> None:
        definition = "Smält sten under marken."

        self.assertEqual(mask_term_in_definition("Lava", definition), definition)

    def test_adapters_mask_by_default(self) -> None:
        [term] = from_concepts([Concept(term="Magma", definition="Magma är smält sten.")], "m1", "sv")

        self.assertEqual(term.definition, "[...] är smält sten.")


if __name__ == "__main__":
    unittest.main()
