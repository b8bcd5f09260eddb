from queue_orchestrator.cli import main

raise SystemExit(main())
