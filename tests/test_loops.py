"""
Test suite for while loops, break and continue.
"""

import pytest

from stepflow import WorkflowExecutor


class TestWhileLoops:
    """Loop blocks check their while condition before every iteration."""

    @pytest.mark.asyncio
    async def test_loop(self, flow):
        """Adds 1 until 10, then multiplies by 10."""
        result = await flow.start('loop', {'result': 0})

        assert result.finished is True
        assert result.context['result'] == 100

    @pytest.mark.asyncio
    async def test_loop_zero_iterations(self, math_steps):
        """A while condition false at first check runs no iteration."""
        flow = WorkflowExecutor(math_steps)
        flow.register('never', [
            {'while': 'result > 100', 'steps': ['error']},
            {'id': 'mul', 'input': 10},
        ])

        result = await flow.start('never', {'result': 1})

        assert result.finished is True
        assert result.context['result'] == 10

    @pytest.mark.asyncio
    async def test_while_checked_before_every_iteration(self, math_steps):
        checks = []

        def below_three(ctx):
            checks.append(ctx['result'])
            return ctx['result'] < 3

        flow = WorkflowExecutor(math_steps)
        flow.register('counted', [{'while': below_three, 'steps': [{'id': 'add', 'input': 1}]}])

        result = await flow.start('counted', {'result': 0})

        assert result.context['result'] == 3
        assert checks == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_loop_with_gate(self, math_steps):
        """A gate on a loop block is checked once, before the first while check."""
        flow = WorkflowExecutor(math_steps)
        flow.register('gated-loop', [
            {'condition': 'result == 0', 'while': 'result < 5', 'steps': [{'id': 'add', 'input': 1}]},
        ])

        taken = await flow.start('gated-loop', {'result': 0})
        assert taken.context['result'] == 5

        skipped = await flow.start('gated-loop', {'result': 1})
        assert skipped.context['result'] == 1

    @pytest.mark.asyncio
    async def test_loop_gate_not_rechecked_on_resume(self, math_steps):
        """Resuming inside a gated loop skips its gate; later iterations check only while."""
        gate_calls = []
        while_calls = []

        def gate(ctx):
            gate_calls.append(ctx['result'])
            return ctx['result'] == 0

        def below_four(ctx):
            while_calls.append(ctx['result'])
            return ctx['result'] < 4

        flow = WorkflowExecutor(math_steps)
        flow.register('gated-ask', [{'condition': gate, 'while': below_four, 'steps': ['add']}])

        result = await flow.start('gated-ask', {'result': 0})
        assert result.indexes == [0, 0]

        result = await result.resume(3)
        assert result.context['result'] == 3
        assert result.indexes == [0, 0]

        final = await result.resume(3)

        assert final.finished is True
        assert final.context['result'] == 6
        assert gate_calls == [0]
        assert while_calls == [0, 3, 6]


class TestBreakContinue:
    """Control markers end the iteration or the loop."""

    @pytest.mark.asyncio
    async def test_loop_break(self, flow):
        """Break once result > 5: (0 + 6) * 10 = 60."""
        result = await flow.start('loop-break', {'result': 0})

        assert result.finished is True
        assert result.context['result'] == 60

    @pytest.mark.asyncio
    async def test_loop_continue(self, flow):
        """Continue skips the multiplication once result > 5."""
        result = await flow.start('loop-continue', {'result': 0})

        assert result.finished is True
        assert result.context['result'] == 100

    @pytest.mark.asyncio
    async def test_break_skips_remaining_siblings(self, math_steps):
        flow = WorkflowExecutor(math_steps)
        flow.register('break-now', [
            {'while': 'result < 10', 'steps': [
                {'id': 'add', 'input': 1},
                {'break': 'result > 5'},
                {'id': 'add', 'input': 100},
            ]},
        ])

        result = await flow.start('break-now', {'result': 5})

        assert result.finished is True
        assert result.context['result'] == 6

    @pytest.mark.asyncio
    async def test_break_inside_conditional_ends_enclosing_loop(self, math_steps):
        flow = WorkflowExecutor(math_steps)
        flow.register('break-in-block', [
            {'while': 'result < 100', 'steps': [
                {'id': 'add', 'input': 1},
                {'condition': 'result >= 3', 'steps': [
                    {'id': 'mul', 'input': 10},
                    {'break': 'True'},
                ]},
                {'id': 'add', 'input': 1},
            ]},
            {'id': 'add', 'input': 1000},
        ])

        result = await flow.start('break-in-block', {'result': 0})

        assert result.finished is True
        assert result.context['result'] == 1030
        assert result.indexes == []

    @pytest.mark.asyncio
    async def test_continue_inside_conditional(self, math_steps):
        flow = WorkflowExecutor(math_steps)
        flow.register('continue-in-block', [
            {'while': 'result < 4', 'steps': [
                {'id': 'add', 'input': 1},
                {'condition': 'result % 2 == 1', 'steps': [{'continue': 'True'}]},
                {'id': 'add', 'input': 10},
            ]},
        ])

        # 0 -> 1 (odd, continue) -> 2 -> 12
        result = await flow.start('continue-in-block', {'result': 0})

        assert result.finished is True
        assert result.context['result'] == 12


class TestNestedLoops:
    """Signals only affect the innermost enclosing loop."""

    @pytest.mark.asyncio
    async def test_break_affects_innermost_loop_only(self, counter_steps):
        flow = WorkflowExecutor(counter_steps)
        flow.register('nested-break', [
            {'while': 'i < 3', 'steps': [
                'inc_i',
                {'while': 'j < 10', 'steps': ['inc_j', {'break': 'j >= 2'}, 'record']},
            ]},
        ])

        result = await flow.start('nested-break', {'i': 0, 'j': 0, 'log': []})

        assert result.finished is True
        assert result.context['i'] == 3
        assert result.context['log'] == [(1, 1), (2, 1), (3, 1)]

    @pytest.mark.asyncio
    async def test_continue_affects_innermost_loop_only(self, counter_steps):
        flow = WorkflowExecutor(counter_steps)
        flow.register('nested-continue', [
            {'while': 'i < 2', 'steps': [
                'inc_i',
                {'while': 'j < 3', 'steps': ['inc_j', {'continue': 'j == 2'}, 'record']},
                'record',
            ]},
        ])

        result = await flow.start('nested-continue', {'i': 0, 'j': 0, 'log': []})

        assert result.finished is True
        assert result.context['log'] == [(1, 1), (1, 3), (1, 3), (2, 1), (2, 3), (2, 3)]

    @pytest.mark.asyncio
    async def test_outer_break_ends_outer_loop(self, counter_steps):
        flow = WorkflowExecutor(counter_steps)
        flow.register('outer-break', [
            {'while': 'i < 10', 'steps': [
                'inc_i',
                {'while': 'j < 2', 'steps': ['inc_j', 'record']},
                {'break': 'i == 2'},
            ]},
        ])

        result = await flow.start('outer-break', {'i': 0, 'j': 0, 'log': []})

        assert result.finished is True
        assert result.context['i'] == 2
        assert result.context['log'] == [(1, 1), (1, 2), (2, 1), (2, 2)]
