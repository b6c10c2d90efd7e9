from unittest.mock import MagicMock

from form_persistence.form_state import FormState


class TestFormState:
    def test_initial_data_is_copied(self):
        initial = {"tags": ["a"]}
        state = FormState(initial)
        state["tags"].append("b")
        assert initial == {"tags": ["a"]}

    def test_each_mutation_notifies_once(self):
        listener = MagicMock()
        state = FormState({"a": 1})
        state.add_listener(listener)

        state["a"] = 2
        state.update({"b": 3, "c": 4})
        del state["c"]
        state.touch()
        assert listener.call_count == 4
        assert dict(state) == {"a": 2, "b": 3}

    def test_silenced_block(self):
        listener = MagicMock()
        state = FormState({})
        state.add_listener(listener)
        with state.silenced():
            state.assign({"a": 1})
        listener.assert_not_called()
        assert state["a"] == 1

    def test_snapshot_is_detached(self):
        state = FormState({"tags": ["a"]})
        snap = state.snapshot()
        snap["tags"].append("b")
        assert state["tags"] == ["a"]

    def test_remove_listener(self):
        listener = MagicMock()
        state = FormState({})
        state.add_listener(listener)
        state.remove_listener(listener)
        state.remove_listener(listener)
        state["a"] = 1
        listener.assert_not_called()
