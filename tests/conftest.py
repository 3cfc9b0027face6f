"""
pytest configuration and fixtures for protocol generator tests.

Provides reusable fixtures for:
- A fresh ProtocolSupport (run scoped enum registry and file cache)
- Building XML elements from text
- Hypothesis property-based testing configuration
"""

import pytest
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from protocol_support import ProtocolSupport

# Configure Hypothesis profiles
try:
    from hypothesis import settings, Verbosity, Phase

    # Default profile: balanced speed and coverage
    settings.register_profile(
        "default",
        max_examples=100,
        deadline=None,
    )

    # CI profile: more thorough testing
    settings.register_profile(
        "ci",
        max_examples=500,
        deadline=None,
        suppress_health_check=[],
        phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    )

    # Dev profile: fast iteration
    settings.register_profile(
        "dev",
        max_examples=10,
        deadline=None,
    )

    # Debug profile: verbose output
    settings.register_profile(
        "debug",
        max_examples=10,
        verbosity=Verbosity.verbose,
        deadline=None,
    )

    # Load profile from environment
    import os
    profile = os.environ.get("HYPOTHESIS_PROFILE", "default")
    settings.load_profile(profile)

except ImportError:
    pass  # Hypothesis not installed


@pytest.fixture
def support():
    """
    Protocol settings for a big endian protocol "Demo" with type prefix "Demo".

    Usage:
        def test_field(support):
            field = ProtocolField(support, xml('<Data name="x" inMemoryType="unsigned8"/>'))
    """
    return ProtocolSupport(protocol_name="Demo", prefix="Demo", big_endian=True)


@pytest.fixture
def little_support():
    """Same as support, little endian."""
    return ProtocolSupport(protocol_name="Demo", prefix="Demo", big_endian=False)


def xml(text: str) -> ET.Element:
    """Parse an XML snippet into an element."""
    return ET.fromstring(text)


@pytest.fixture
def demo_xml():
    """A protocol exercising enums, structures, packets, bitfields and defaults."""
    return """<?xml version="1.0"?>
<Protocol name="Demo" prefix="Demo" api="3" version="1.2.0" comment="Demonstration protocol">
    <Enum name="DemoPackets" comment="Packet identifiers">
        <Value name="DEMO_STATUS" value="0x10" comment="Status report"/>
        <Value name="DEMO_CONFIG" comment="Configuration"/>
        <Value name="DEMO_PING" comment="Keep alive"/>
    </Enum>
    <Structure name="Position" comment="A position on the earth">
        <Data name="latitude" inMemoryType="float64" encodedType="signed32" scaler="1000000" comment="Latitude in degrees"/>
        <Data name="longitude" inMemoryType="float64" encodedType="signed32" scaler="1000000" comment="Longitude in degrees"/>
    </Structure>
    <Packet name="Status" ID="DEMO_STATUS" comment="Periodic status of the device">
        <Enum name="DemoMode" comment="Operating modes">
            <Value name="DEMO_MODE_IDLE"/>
            <Value name="DEMO_MODE_RUN"/>
            <Value name="DEMO_MODE_FAULT"/>
        </Enum>
        <Data name="mode" inMemoryType="bitfield2" comment="Operating mode"/>
        <Data name="alarm" inMemoryType="bitfield1" comment="Alarm active"/>
        <Data name="spare" inMemoryType="bitfield5" comment="Reserved bits"/>
        <Data name="numSamples" inMemoryType="unsigned8" comment="Number of samples"/>
        <Data name="samples" inMemoryType="unsigned16" array="8" variableArray="numSamples" comment="Sample values"/>
        <Data name="temperature" inMemoryType="float32" encodedType="signed16" scaler="100" default="0" comment="Temperature in C"/>
    </Packet>
    <Packet name="Config" ID="DEMO_CONFIG" structureInterface="true" parameterInterface="true" comment="Device configuration">
        <Data name="rate" inMemoryType="unsigned16" comment="Report rate in seconds"/>
        <Data name="hasLabel" inMemoryType="unsigned8" comment="Non zero if a label follows"/>
        <Data name="label" inMemoryType="string" array="16" dependsOn="hasLabel" comment="Device label"/>
    </Packet>
    <Packet name="Ping" ID="DEMO_PING" comment="Keep alive with no data"/>
</Protocol>
"""
