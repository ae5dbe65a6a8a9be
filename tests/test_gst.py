import pytest

from routes.gst_utils import check_character, require_valid_gstin, verify_gstin

VALID = '27AAPFU0939F1ZV'


def test_valid_gstin_decodes_parts():
    result = verify_gstin(VALID)
    assert result == {
        'isValid': True,
        'message': 'Format Valid (Registry Offline)',
        'pan': 'AAPFU0939F',
        'stateCode': '27',
        'stateName': 'Maharashtra',
        'status': 'Verified',
    }


def test_input_is_normalised():
    assert verify_gstin('  27aapfu0939f1zv ')['isValid'] is True


def test_bad_checksum():
    result = verify_gstin(VALID[:14] + 'A')
    assert result == {'isValid': False, 'message': 'Invalid GSTIN Checksum.'}


@pytest.mark.parametrize('value', ['', None, '27AAPFU0939F1Z', '27AAPFU0939F1XV', 'AAAPFU0939F1ZVV'])
def test_bad_format(value):
    assert verify_gstin(value) == {'isValid': False, 'message': 'Invalid GSTIN format.'}


def test_unknown_state_code():
    body = '99AAPFU0939F1Z'
    result = verify_gstin(body + check_character(body))
    assert result['isValid'] is True
    assert result['stateName'] == 'Unknown State'


def test_require_valid_gstin():
    assert require_valid_gstin('') is None
    assert require_valid_gstin(VALID.lower()) == VALID
    with pytest.raises(ValueError):
        require_valid_gstin('27AAPFU0939F1ZA')


def test_verify_endpoint(client):
    resp = client.post('/api/gst/verify', json={'gstin': VALID})
    assert resp.status_code == 200
    assert resp.get_json()['stateName'] == 'Maharashtra'
    assert client.post('/api/gst/verify', json={'gstin': 'junk'}).get_json()['isValid'] is False
