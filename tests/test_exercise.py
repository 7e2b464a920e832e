import pytest

try:
    import swimtext as st
except Exception as e:  # pragma: no cover
    pytest.skip(f"swimtext unavailable: {e}", allow_module_level=True)


def test_repetitions_distance_rest():
    ex = st.parse_exercise_tokens("3*100 spé r : 10''")
    assert (ex.repetitions, ex.distance, ex.stroke) == (3, 100, "spe")
    assert (ex.rest, ex.rest_type) == (10, "rest")


def test_bare_distance_defaults():
    ex = st.parse_exercise_tokens("400")
    assert ex == st.ParsedExercise(distance=400)
    assert ex.intensity == "V0" and ex.stroke_type == "nc"
    assert ex.rest is None and ex.rest_type is None


def test_kick_set():
    ex = st.parse_exercise_tokens("6*50 jbes spé r : 10''")
    assert (ex.repetitions, ex.distance, ex.stroke, ex.stroke_type) == (6, 50, "spe", "jambes")


def test_easy_alias():
    ex = st.parse_exercise_tokens("300 Cr EZ")
    assert (ex.distance, ex.stroke, ex.intensity) == (300, "crawl", "V0")


def test_departure_pace():
    ex = st.parse_exercise_tokens("12*100 spé V3 @ 1'45")
    assert ex.to_dict() == {
        "repetitions": 12, "distance": 100, "stroke": "spe", "strokeType": "nc",
        "intensity": "V3", "rest": 105, "restType": "departure",
        "equipment": [], "modalities": [],
    }


def test_drill_with_paddles_keeps_leftover_text():
    ex = st.parse_exercise_tokens("400 spé plaq Éduc W d'appuis")
    assert ex.stroke == "spe" and ex.stroke_type == "educ"
    assert ex.equipment == ("plaquettes",)
    assert ex.modalities == ("W d'appuis",)


def test_progressive_with_lane_alternative():
    ex = st.parse_exercise_tokens("6*100 Cr tuba V1↗︎ @ 1'25 / 1'30")
    assert (ex.repetitions, ex.distance, ex.stroke) == (6, 100, "crawl")
    assert ex.intensity == "Prog"
    assert (ex.rest, ex.rest_type) == (85, "departure")
    assert "tuba" in ex.equipment
    assert ex.modalities == ()


def test_d_marker_departure_and_trailing_text():
    ex = st.parse_exercise_tokens("3*100 jbes spé d : 1'50 / 2'00 w virages")
    assert (ex.repetitions, ex.distance, ex.stroke_type) == (3, 100, "jambes")
    assert (ex.rest, ex.rest_type) == (110, "departure")
    assert ex.modalities == ("w virages",)


@pytest.mark.parametrize("line", ["50 D2B", "8*50 spé V3 (1° DP) @ 55''", "100 DP"])
def test_d_prefixed_words_are_not_backstroke(line):
    assert st.parse_exercise_tokens(line).stroke != "dos"


def test_single_d_is_backstroke():
    assert st.parse_exercise_tokens("50 D").stroke == "dos"
    assert st.parse_exercise_tokens("50 Dos").stroke == "dos"


def test_parenthesized_group_is_one_modality():
    ex = st.parse_exercise_tokens("800 (100 Cr / 100 Cr-D pull)")
    assert ex.distance == 800
    assert ex.modalities == ("100 Cr / 100 Cr-D pull",)
    assert ex.equipment == ()
    assert ex.stroke is None


def test_paren_in_the_middle():
    ex = st.parse_exercise_tokens("8*50 spé V3 (1° DP) @ 55''")
    assert ex.stroke == "spe" and ex.intensity == "V3"
    assert (ex.rest, ex.rest_type) == (55, "departure")
    assert ex.modalities == ("1° DP",)


def test_medley_and_free_word():
    ex = st.parse_exercise_tokens("100 4N V0 ampli")
    assert (ex.distance, ex.stroke, ex.intensity) == (100, "4n", "V0")
    assert ex.modalities == ("ampli",)


def test_equipment_order_without_duplicates():
    ex = st.parse_exercise_tokens("4*200 Cr plaq tuba pull plaquettes r : 20''")
    assert ex.equipment == ("plaquettes", "tuba", "pull")
    assert ex.rest == 20


def test_leftover_text_is_cut_from_the_source():
    ex = st.parse_exercise_tokens("200 Cr 1/2 pull")
    assert ex.equipment == ("pull",)
    assert ex.modalities == ("1/2",)
    ex = st.parse_exercise_tokens("6*50 jbes spé W couléée, R2N @ 60''")
    assert ex.modalities == ("W couléée, R2N",)


def test_only_first_stroke_is_taken():
    ex = st.parse_exercise_tokens("8*100 Cr / D pull ou palmes r : 15''")
    assert ex.stroke == "crawl"
    assert ex.equipment == ("pull", "palmes")
    assert ex.modalities == ("D", "ou")


def test_markers_are_stripped():
    assert st.parse_exercise_tokens("#150 Cr") == st.parse_exercise_tokens("150 Cr")
    assert st.parse_exercise_tokens("+ 3*400").repetitions == 3


def test_zero_repetitions_raised_to_one():
    assert st.parse_exercise_tokens("0*100").repetitions == 1


def test_garbage_never_raises():
    for line in ["", "   ", "((((", "@ @ : / )", "r :", "x*y", "↗︎"]:
        ex = st.parse_exercise_tokens(line)
        assert ex.repetitions >= 1
        assert ex.intensity == "V0"


def test_tokenizer_splits_glued_colon():
    assert [t.type for t in st.tokenize("r :20''")] == ["WORD", "COLON", "TIME"]
    assert [t.type for t in st.tokenize("6*50 (a b) @ 1'00")] == ["REPDIST", "PAREN", "AT", "TIME"]
