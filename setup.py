# setup.py
from setuptools import setup, find_packages

setup(
    name="chatapply-project",
    version="0.1.0",
    description="A CLI tool that parses LLM responses and applies the proposed file changes, composed of the applyflow and chatapply packages.",
    author="ChatApply Team",
    # applyflow: 解析 / 校验 / 应用的核心库；chatapply: CLI 与配置层
    packages=find_packages(include=['applyflow', 'applyflow.*', 'chatapply', 'chatapply.*']),
    include_package_data=True,
    package_data={
        'chatapply': ['templates/*.j2'],
    },
    install_requires=[
        "click>=8.0",
        "pyyaml",
        "jinja2",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "anyio",
        ],
    },
    entry_points={
        'console_scripts': [
            'chatapply = chatapply.cli:cli',
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Build Tools",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
