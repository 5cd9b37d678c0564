"""Shared fixtures: arithmetic steps over a {'result': number} context."""

import pytest

from stepflow import WorkflowExecutor, create_step


@pytest.fixture
def math_steps():
    """Steps operating on ctx['result']."""
    return [
        create_step('add', "ctx['result'] += input", input='number'),
        create_step('mul', "ctx['result'] *= input", input='number'),
        create_step('div', "ctx['result'] = ctx['result'] / input", input='number'),
        create_step('error', "StepRetriableError(ValueError('test error')) if ctx['result'] < 0 else None"),
    ]


@pytest.fixture
def flow(math_steps):
    """Executor with the arithmetic steps and the common schemas registered."""
    flow = WorkflowExecutor(math_steps)
    flow.register('add-mul-div', ['add', 'mul', 'div'])
    flow.register('add-mul-div-with-inputs', [
        {'id': 'add', 'input': 5}, {'id': 'mul', 'input': 2}, {'id': 'div', 'input': 6},
    ])
    flow.register('conditional', [
        {'id': 'add', 'input': 5},
        {'condition': 'result < 0', 'steps': ['error']},
        {'condition': 'result > 10 and result <= 50', 'steps': [
            {'id': 'add', 'input': -10},
            {'id': 'mul', 'input': 2},
        ]},
        {'condition': lambda ctx: ctx['result'] > 50, 'steps': [
            {'id': 'add', 'input': -25},
            {'id': 'div', 'input': 4},
            {'steps': ['add', 'add']},
        ]},
        {'id': 'mul', 'input': 1},
    ])
    flow.register('loop', [
        {'while': 'result < 10', 'steps': [{'id': 'add', 'input': 1}]},
        {'id': 'mul', 'input': 10},
    ])
    flow.register('loop-break', [
        {'while': 'result < 10', 'steps': [{'id': 'add', 'input': 1}, {'break': 'result > 5'}]},
        {'id': 'mul', 'input': 10},
    ])
    flow.register('loop-continue', [
        {'while': 'result < 10', 'steps': [
            {'id': 'add', 'input': 1}, {'continue': 'result > 5'}, {'id': 'mul', 'input': 2},
        ]},
        {'id': 'mul', 'input': 10},
    ])
    return flow


@pytest.fixture
def counter_steps():
    """Steps operating on ctx['i'], ctx['j'] and ctx['log'] for nested loop tests."""
    return [
        create_step('inc_i', "ctx['i'] += 1\nctx['j'] = 0"),
        create_step('inc_j', "ctx['j'] += 1"),
        create_step('record', "ctx['log'].append((ctx['i'], ctx['j']))"),
        create_step('ask', "ctx['log'].append(input)", input='value'),
    ]
