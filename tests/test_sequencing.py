"""
Test suite for sequential execution and input handling.
"""

import pytest

from stepflow import WorkflowExecutor, create_step
from stepflow.workflow.executor import merge_input


class TestSequentialExecution:
    """Flat schemas run every step in order."""

    @pytest.mark.asyncio
    async def test_hardcoded_inputs(self, flow):
        """Literal inputs feed each step: ((1 + 5) * 2) / 6 == 2."""
        result = await flow.start('add-mul-div-with-inputs', {'result': 1})

        assert result.finished is True
        assert result.context['result'] == 2
        assert result.input_required is None
        assert result.indexes == []
        assert result.resume is None
        assert result.retry is None

    @pytest.mark.asyncio
    async def test_input_request_and_resume(self, flow):
        """Steps without literal input halt and resume with the supplied value."""
        result = await flow.start('add-mul-div', {'result': 1})
        assert result.finished is False
        assert result.input_required == 'number'
        assert result.step_id == 'add'
        assert result.resume is not None
        assert result.retry is None
        assert result.indexes == [0]

        add = await result.resume(5)
        assert add.finished is False
        assert add.context['result'] == 6
        assert add.input_required == 'number'
        assert add.step_id == 'mul'
        assert add.indexes == [1]

        mul = await add.resume(2)
        assert mul.finished is False
        assert mul.context['result'] == 12
        assert mul.step_id == 'div'

        div = await mul.resume(6)
        assert div.finished is True
        assert div.context['result'] == 2
        assert div.input_required is None
        assert div.resume is None

    @pytest.mark.asyncio
    async def test_resumed_result_matches_literal_input(self, flow):
        """Supplying input on resume gives the same result as literal input."""
        result = await flow.start('add-mul-div', {'result': 1})
        for value in (5, 2, 6):
            result = await result.resume(value)

        literal = await flow.start('add-mul-div-with-inputs', {'result': 1})
        assert result.finished is True
        assert result.context == literal.context

    @pytest.mark.asyncio
    async def test_start_input_consumed_by_first_step(self, flow):
        """Input passed to start feeds only the first step."""
        result = await flow.start('add-mul-div', {'result': 1}, 5)

        assert result.context['result'] == 6
        assert result.step_id == 'mul'
        assert result.input_required == 'number'

    @pytest.mark.asyncio
    async def test_call_input_overrides_literal_input(self, flow):
        """Non-mapping call input replaces the literal input of the step."""
        result = await flow.start('add-mul-div-with-inputs', {'result': 1}, 3)

        assert result.finished is True
        assert result.context['result'] == pytest.approx(8 / 6)

    @pytest.mark.asyncio
    async def test_mapping_inputs_are_merged(self):
        """Mapping inputs merge with call input keys taking precedence."""
        def configure(ctx, input):
            ctx.update(input)

        flow = WorkflowExecutor([create_step('configure', configure)])
        flow.register('configure', [{'id': 'configure', 'input': {'a': 1, 'b': 2}}])

        result = await flow.start('configure', {}, {'b': 3, 'c': 4})

        assert result.finished is True
        assert result.context == {'a': 1, 'b': 3, 'c': 4}

    @pytest.mark.asyncio
    async def test_async_handlers(self):
        """Coroutine handlers are awaited in order."""
        calls = []

        async def first(ctx, input):
            calls.append('first')

        async def second(ctx, input):
            calls.append('second')
            ctx['done'] = True

        flow = WorkflowExecutor()
        flow.add_step('first', first)
        flow.add_step('second', second)
        flow.register('pair', ['first', 'second'])

        result = await flow.start('pair', {})

        assert result.finished is True
        assert calls == ['first', 'second']
        assert result.context == {'done': True}

    @pytest.mark.asyncio
    async def test_empty_schema_finishes(self):
        """A schema with no items finishes immediately."""
        flow = WorkflowExecutor()
        flow.register('empty', [])

        result = await flow.start('empty', {'result': 1})

        assert result.finished is True
        assert result.indexes == []

    @pytest.mark.asyncio
    async def test_object_context(self):
        """Contexts may be plain objects; conditions see their attributes."""
        class Ctx:
            def __init__(self):
                self.count = 0

        def bump(ctx, input):
            ctx.count += 1

        flow = WorkflowExecutor()
        flow.add_step('bump', bump)
        flow.register('bump', [{'while': 'count < 3', 'steps': ['bump']}])

        result = await flow.start('bump', Ctx())

        assert result.finished is True
        assert result.context.count == 3


class TestMergeInput:
    """Input merging rules."""

    def test_both_absent(self):
        assert merge_input(None, None) is None

    def test_only_literal(self):
        assert merge_input(5, None) == 5

    def test_only_supplied(self):
        assert merge_input(None, 7) == 7

    def test_mappings_merge(self):
        literal = {'a': 1, 'b': 2}
        merged = merge_input(literal, {'b': 3})
        assert merged == {'a': 1, 'b': 3}
        assert literal == {'a': 1, 'b': 2}

    def test_supplied_wins_otherwise(self):
        assert merge_input({'a': 1}, 'text') == 'text'
        assert merge_input(5, {'a': 1}) == {'a': 1}
