from decimal import Decimal

import pytest

from backend.app.services import csv_codec
from backend.app.services.input_assembler import INPUT_FILES, InputAssembler


@pytest.fixture
def assembler():
    return InputAssembler()


def test_build_files_returns_all_inputs_in_order(assembler, make_optimization):
    optimization = make_optimization()

    files = assembler.build_files(optimization)

    assert list(files) == list(INPUT_FILES)
    assert all(content.endswith("\n") for content in files.values())


def test_parameters_file(assembler, make_optimization):
    optimization = make_optimization()

    rows = csv_codec.decode(assembler.parameters_csv(optimization))

    values = {r['Parameter']: r['Value'] for r in rows}
    assert [r['Parameter'] for r in rows] == ['T', 'Rate', 'InitBal', 'NbMustTakeOne']
    assert values['T'] == '3'
    assert Decimal(values['Rate']) == Decimal('0.05')
    assert Decimal(values['InitBal']) == Decimal('1000')
    assert values['NbMustTakeOne'] == '1'


def test_cost_and_reward_files_are_sorted_by_project_then_period(assembler, make_optimization):
    optimization = make_optimization()

    costs = csv_codec.decode(assembler.project_costs_csv(optimization))
    rewards = csv_codec.decode(assembler.project_rewards_csv(optimization))

    assert [(r['project'], r['period']) for r in costs] == [('Alpha', '1'), ('Beta', '1'), ('Beta', '2')]
    assert [Decimal(r['cost']) for r in costs] == [Decimal('300'), Decimal('400'), Decimal('100')]
    assert [(r['project'], r['period']) for r in rewards] == [('Alpha', '2'), ('Alpha', '3'), ('Beta', '3')]
    assert [Decimal(r['reward']) for r in rewards] == [Decimal('250'), Decimal('250'), Decimal('700')]


def test_min_balance_and_must_take_one_files(assembler, make_optimization):
    optimization = make_optimization()

    balances = csv_codec.decode(assembler.min_balance_csv(optimization))
    groups = csv_codec.decode(assembler.must_take_one_csv(optimization))

    assert [r['Period'] for r in balances] == ['1', '2', '3']
    assert all(Decimal(r['MinBal']) == Decimal('100') for r in balances)
    assert groups == [{'group': '1', 'project': 'Alpha'}, {'group': '1', 'project': 'Beta'}]


def test_empty_sections_produce_header_only_files(assembler, make_optimization):
    optimization = make_optimization(parameters={'nb_must_take_one': 0}, min_balances=[], must_take_one=[])

    assert assembler.min_balance_csv(optimization) == "Period,MinBal\n"
    assert assembler.must_take_one_csv(optimization) == "group,project\n"


def test_valid_inputs_have_no_errors(assembler, make_optimization):
    assert assembler.validate(make_optimization()) == []


def test_validate_reports_missing_inputs(assembler, make_optimization):
    optimization = make_optimization(
        parameters={'nb_must_take_one': 0},
        project_costs=[], project_rewards=[], must_take_one=[],
    )

    assert 'No project inputs defined' in assembler.validate(optimization)


def test_validate_reports_project_without_costs(assembler, make_optimization, sample_data):
    rewards = sample_data['project_rewards'] + [
        {'project_name': 'Gamma', 'period': 2, 'amount': Decimal('50')},
    ]
    optimization = make_optimization(project_rewards=rewards)

    errors = assembler.validate(optimization)

    assert errors == ["Project 'Gamma' has no cost entries"]


def test_validate_reports_group_member_without_costs(assembler, make_optimization, sample_data):
    groups = sample_data['must_take_one'] + [{'group_id': 1, 'project_name': 'Delta'}]
    optimization = make_optimization(must_take_one=groups)

    assert "Project 'Delta' has no cost entries" in assembler.validate(optimization)


@pytest.mark.parametrize('parameters, message', [
    ({'total_periods': 0}, 'Total periods must be greater than 0'),
    ({'initial_balance': Decimal('0')}, 'Initial balance must be greater than 0'),
])
def test_validate_reports_bad_parameters(assembler, make_optimization, parameters, message):
    optimization = make_optimization(parameters=parameters)

    assert message in assembler.validate(optimization)


def test_validate_reports_group_count_mismatch(assembler, make_optimization):
    optimization = make_optimization(parameters={'nb_must_take_one': 2})

    errors = assembler.validate(optimization)

    assert len(errors) == 1
    assert errors[0].startswith('NbMustTakeOne (2)')
    assert '(1)' in errors[0]


def test_validate_does_not_modify_optimization(assembler, make_optimization, session):
    optimization = make_optimization(parameters={'total_periods': 0})

    assembler.validate(optimization)

    assert optimization.is_pending()
    assert optimization.execution_log is None
    assert not session.dirty
