# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="journal-transcriber",
    version="1.1.0",
    description="Offline-tolerant transcription queue for voice journal recordings",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["journal_transcriber*"]),
    python_requires=">=3.9",
    install_requires=[
        "requests>=2.28",
        "urllib3>=1.26",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'journal-transcriber=journal_transcriber.main:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
