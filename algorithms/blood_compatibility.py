"""
Blood Type Compatibility Helper
Red cell ABO/Rh compatibility: which unit blood types may be transfused
into which recipient blood types
"""
from algorithms.exceptions import IncompatibleBloodType, ValidationError

BLOOD_TYPES = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

# Donor type -> recipient types that may receive it
COMPATIBILITY = {
    'O-': ['O-', 'O+', 'A-', 'A+', 'B-', 'B+', 'AB-', 'AB+'],  # Universal donor
    'O+': ['O+', 'A+', 'B+', 'AB+'],
    'A-': ['A-', 'A+', 'AB-', 'AB+'],
    'A+': ['A+', 'AB+'],
    'B-': ['B-', 'B+', 'AB-', 'AB+'],
    'B+': ['B+', 'AB+'],
    'AB-': ['AB-', 'AB+'],
    'AB+': ['AB+'],  # Universal recipient
}


def validate_blood_type(blood_type):
    if blood_type not in COMPATIBILITY:
        raise ValidationError(f"Unknown blood type: {blood_type}")
    return blood_type


def is_compatible(donor_blood_type, recipient_blood_type):
    """
    Check if blood of donor_blood_type can be given to recipient_blood_type

    Unknown types are never compatible.
    """
    return recipient_blood_type in COMPATIBILITY.get(donor_blood_type, [])


def check_compatible(donor_blood_type, recipient_blood_type):
    """Raise IncompatibleBloodType unless the pairing is safe"""
    if not is_compatible(donor_blood_type, recipient_blood_type):
        raise IncompatibleBloodType(
            f"{donor_blood_type} blood cannot be transfused to a {recipient_blood_type} recipient"
        )


def get_compatible_donors(recipient_blood_type):
    """Blood types a recipient can receive"""
    return [
        donor_type
        for donor_type, recipients in COMPATIBILITY.items()
        if recipient_blood_type in recipients
    ]


def get_compatible_recipients(donor_blood_type):
    return list(COMPATIBILITY.get(donor_blood_type, []))
