from setuptools import setup, find_packages

setup(
    name="rtc_handlers",
    version="0.1.0",
    description="Plan-B aware SDP offer/answer negotiation for multi-track WebRTC sessions.",
    author="Jyrone Parker",
    author_email="jyrone.parker@gmail.com",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "aiortc>=1.9",
        "pyee>=11",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
