"""
Offline GSTIN validation: structural regex plus the mod-36 check character.
"""
import re

GSTIN_RE = re.compile(r'^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$')
CHARSET = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ'

STATE_CODES = {
    '01': 'Jammu and Kashmir', '02': 'Himachal Pradesh', '03': 'Punjab', '04': 'Chandigarh',
    '05': 'Uttarakhand', '06': 'Haryana', '07': 'Delhi', '08': 'Rajasthan', '09': 'Uttar Pradesh',
    '10': 'Bihar', '11': 'Sikkim', '12': 'Arunachal Pradesh', '13': 'Nagaland', '14': 'Manipur',
    '15': 'Mizoram', '16': 'Tripura', '17': 'Meghalaya', '18': 'Assam', '19': 'West Bengal',
    '20': 'Jharkhand', '21': 'Odisha', '22': 'Chattisgarh', '23': 'Madhya Pradesh', '24': 'Gujarat',
    '26': 'Dadra and Nagar Haveli and Daman and Diu', '27': 'Maharashtra', '29': 'Karnataka',
    '30': 'Goa', '31': 'Lakshadweep', '32': 'Kerala', '33': 'Tamil Nadu', '34': 'Puducherry',
    '35': 'Andaman and Nicobar Islands', '36': 'Telangana', '37': 'Andhra Pradesh', '38': 'Ladakh',
}


def check_character(body):
    """Check character for the first 14 characters of a GSTIN."""
    total = 0
    for i, ch in enumerate(body[:14]):
        product = CHARSET.index(ch) * (1 if i % 2 == 0 else 2)
        total += product // 36 + product % 36
    return CHARSET[(36 - total % 36) % 36]


def verify_gstin(gstin):
    """
    Validate a GSTIN and decode its parts.

    Returns a dict with isValid and message, plus pan, stateCode,
    stateName and status when valid. Never raises for bad input.
    """
    clean = (gstin or '').strip().upper()
    if not GSTIN_RE.match(clean):
        return {'isValid': False, 'message': 'Invalid GSTIN format.'}
    if clean[14] != check_character(clean):
        return {'isValid': False, 'message': 'Invalid GSTIN Checksum.'}

    state_code = clean[:2]
    return {
        'isValid': True,
        'message': 'Format Valid (Registry Offline)',
        'pan': clean[2:12],
        'stateCode': state_code,
        'stateName': STATE_CODES.get(state_code, 'Unknown State'),
        'status': 'Verified',
    }


def require_valid_gstin(gstin, field='gstNumber'):
    """Normalised GSTIN, None for blank input; ValueError when invalid."""
    clean = (gstin or '').strip().upper()
    if not clean:
        return None
    result = verify_gstin(clean)
    if not result['isValid']:
        raise ValueError(f"{field}: {result['message']}")
    return clean
