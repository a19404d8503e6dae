import pytest
from permit_hub.errors import ValidationFailed
from permit_hub.utils.filters import split_csv, split_int_csv
from permit_hub.utils.validation import (
    require_keys, coerce_int, coerce_bool, normalize_approval_mode, first_missing_required, invalid_choice,
)
from permit_hub.utils import validation
from permit_hub.models.permit_type import ApprovalStep, FieldDefinition


def _field(key, order, required=False, field_type='text', options=None, id=None):
    return FieldDefinition(id=id, field_key=key, field_label=key, display_order=order,
                           is_required=required, field_type=field_type, options=options)


def test_csv_helpers():
    assert split_csv('a, b,,c') == ['a', 'b', 'c']
    assert split_csv(['x', ' ']) == ['x']
    assert split_int_csv('1,2') == [1, 2]
    with pytest.raises(ValueError):
        split_int_csv('1,x')


def test_require_keys_reports_first_missing():
    with pytest.raises(ValidationFailed) as exc:
        require_keys({'a': 1, 'b': '  '}, 'a', 'b', 'c')
    assert exc.value.field == 'b'


def test_coercion():
    assert coerce_int('5', 'n') == 5
    assert coerce_int('', 'n') is None
    with pytest.raises(ValidationFailed):
        coerce_int('five', 'n')
    assert coerce_bool('TRUE', 'b') is True
    assert coerce_bool(0, 'b') is False
    with pytest.raises(ValidationFailed):
        coerce_bool('yes please', 'b')


def test_approval_mode_normalisation():
    assert normalize_approval_mode('All') == 'all'
    assert normalize_approval_mode(None) == 'single'
    assert normalize_approval_mode('quorum') == 'single'


def test_approval_modes_come_from_the_step_model():
    assert normalize_approval_mode(' ALL ') == ApprovalStep.MODE_ALL
    assert normalize_approval_mode('') == ApprovalStep.MODE_SINGLE
    assert not hasattr(validation, 'MODE_ALL')
    assert not hasattr(validation, 'validate_status')
    assert 'validate_status' not in validation.__all__


def test_first_missing_required_follows_display_order():
    fields = [_field('late', 2, True), _field('early', 1, True), _field('opt', 0)]
    assert first_missing_required(fields, {}).field_key == 'early'
    assert first_missing_required(fields, {'early': 'x', 'late': None}).field_key == 'late'
    assert first_missing_required(fields, {'early': '', 'late': 0}) is None


def test_invalid_choice_checks_lists():
    fields = [_field('kind', 0, field_type='select', options=['a', 'b']),
              _field('tags', 1, field_type='checkbox', options=['x', 'y'])]
    assert invalid_choice(fields, {'kind': 'a', 'tags': ['x', 'y']}) is None
    assert invalid_choice(fields, {'kind': 'a', 'tags': ['x', 'z']}).field_key == 'tags'
    assert invalid_choice(fields, {'kind': 'c'}).field_key == 'kind'
